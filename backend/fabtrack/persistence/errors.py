"""
Job store errors.

Everything the SQLite store raises derives from PersistenceError, so the
HTTP layer and the CLI can map storage trouble to one response without
knowing which step failed. Errors about a single job document carry its id.
"""

from typing import Optional


class PersistenceError(Exception):
    """Base exception for job store failures."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        self.job_id = job_id
        super().__init__(message)


class SchemaError(PersistenceError):
    """The database schema is missing, newer than this build, or failed to migrate."""

    def __init__(
        self,
        message: str,
        found_version: Optional[int] = None,
        supported_version: Optional[int] = None,
    ):
        self.found_version = found_version
        self.supported_version = supported_version
        super().__init__(message)


class LoadError(PersistenceError):
    """A stored job document could not be decoded."""


class SaveError(PersistenceError):
    """A job document was malformed or could not be written with its audit entries."""
