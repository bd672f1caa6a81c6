"""Domain events for the staged transcoding run.

Events flow through the EventBus, decoupling the staging pipeline from the
console reporter. See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel
from .models import TranscodeJob, RunSummary


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class LockWaiting(Event):
    """Emitted on every retry while another run holds the lock marker."""

    lock_path: Path
    attempt: int
    delay_s: float
    holder: Optional[str] = None


class LockAcquired(Event):
    """Emitted once the lease owns the staging directory."""

    staging_dir: Path
    created_dir: bool


class StagingFinished(Event):
    """Emitted after the input was copied and the staged files collected."""

    input_path: Path
    staging_dir: Path
    files_found: int


class JobEvent(Event):
    job: TranscodeJob


class JobStarted(JobEvent):
    pass


class JobCompleted(JobEvent):
    pass


class JobFailed(JobEvent):
    """Emitted when ffmpeg exits non-zero or cannot be launched."""

    error_message: str


class ProcessingFinished(Event):
    summary: RunSummary


class TeardownFinished(Event):
    """Emitted after the staging directory was cleared (or failed to clear)."""

    staging_dir: Path
    success: bool
    error_message: Optional[str] = None
