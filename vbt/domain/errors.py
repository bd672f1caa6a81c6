"""Errors raised by the staging protocol.

All of them are fatal to a run: the CLI reports the message and exits with 1.
"""

from pathlib import Path
from typing import Optional


class StagingError(Exception):
    """Base class for staging directory failures."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class LockError(StagingError):
    """The lock marker could not be created or inspected."""


class LockTimeout(StagingError):
    """Gave up waiting for another run to release the staging directory."""

    def __init__(self, message: str, path: Optional[Path] = None, waited_s: float = 0.0, holder: Optional[str] = None):
        super().__init__(message, path)
        self.waited_s = waited_s
        self.holder = holder
