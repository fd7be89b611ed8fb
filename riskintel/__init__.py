"""
RiskIntel — Risk Scoring & Intelligence-Driven Adjustment Engine.

Architecture:
    riskintel/
    ├── api/             # FastAPI routers (HTTP layer)
    ├── db/              # SQLAlchemy models, engine, repositories
    ├── middleware/      # Error handling, request context
    ├── scoring/         # Risk levels and residual risk calculator
    ├── risks/           # Risk register and control edits
    ├── intelligence/    # Alert lifecycle, classifier client, event scanner
    ├── treatment/       # Hash-chained treatment log (audit trail)
    ├── periods/         # Quarterly snapshots, trends, migrations
    └── heatmap/         # Likelihood x impact grid aggregation

Module Boundaries:
    - The classifier is EXTERNAL; the engine only consumes its structured result
    - Every numeric change to a risk is written together with its audit entry
    - Committed period snapshots are never updated

Version: 1.0.0
"""

__version__ = "1.0.0"
