from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel

class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class TranscodeJob(BaseModel):
    source_path: Path
    output_path: Path
    status: JobStatus = JobStatus.PENDING
    error_message: Optional[str] = None
    return_code: Optional[int] = None
    duration_seconds: Optional[float] = None

class RunSummary(BaseModel):
    """Outcome of one staged batch.

    Per-file failures are counted here; they never make the run fail.
    """
    files_found: int = 0
    completed: int = 0
    failed: int = 0
    teardown_ok: bool = True
