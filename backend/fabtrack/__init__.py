"""
FabTrack: production workflow tracking for sheet-metal fabrication orders.

Packages:
- workflow: job/batch models and the pure transition engine
- jobs: in-memory registry with per-job locking and change notification
- persistence: SQLite storage and audit trail
- routes, monitoring: FastAPI control and read-only routers
"""

__version__ = "0.1.0"
