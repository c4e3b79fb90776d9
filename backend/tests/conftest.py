"""
Pytest configuration for the FabTrack test suite.
"""

import pytest

from fabtrack.jobs.registry import JobRegistry
from factories import new_job


@pytest.fixture
def job():
    return new_job()


@pytest.fixture
def registry():
    """In-memory registry, no persistence."""
    return JobRegistry()
