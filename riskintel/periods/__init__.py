"""
Period Snapshots — immutable quarterly captures of the risk register,
and the trend / migration / comparison analytics built on them.
"""
