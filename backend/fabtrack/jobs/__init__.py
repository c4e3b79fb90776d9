"""
Job registry: stateful home for job orders around the pure workflow engine.
"""

from .registry import JobRegistry, JobChange

__all__ = ["JobRegistry", "JobChange"]
