"""
Risk Register — risks, their DIME-rated controls, and the cached residual.

Every write that touches inherent scores or controls recomputes the
residual in the same transaction and bumps the risk's version marker.
"""
