"""
Job factories for tests.

All workflow tests pin the clock through the `now` argument so results
are deterministic.
"""

from fabtrack.workflow import Job, approve_qc

# 2023-11-14 22:13:20 UTC
T0 = 1_700_000_000_000


def new_job(total_qty: int = 100, **fields) -> Job:
    """A fresh job at DESIGN created at T0."""
    return Job.create(
        code_no="FAB-001",
        customer="Acme Steel",
        total_qty=total_qty,
        description="Control panel enclosure",
        user="planner",
        now=T0,
        **fields,
    )


def job_in_production(total_qty: int = 100) -> Job:
    """A job approved out of DESIGN: current stage CUTTING, B1 holds everything."""
    return approve_qc(new_job(total_qty), "qc", now=T0 + 1_000)
