"""
RiskIntel Scoring — pure functions, no I/O.

Components:
- levels: score → Low / Medium / High / Extreme, escalation rules
- residual: inherent likelihood/impact reduced by DIME control effectiveness
"""
