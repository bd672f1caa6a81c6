from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from vbt.config.paths import default_ffmpeg_path, default_result_folder, default_temp_folder

LOCK_FILE_NAME = "folder.lock"


class TranscodeConfig(BaseModel):
    """Parameters handed to the external transcoder for every staged file."""
    fps: int = Field(default=30, gt=0)
    resolution: str = "720p"
    bitrate_kbps: int = Field(default=3000, gt=0)
    extension: Optional[str] = None  # Force output extension (e.g. "mp4")
    ffmpeg_path: Path = Field(default_factory=default_ffmpeg_path)
    workers: int = Field(default=1, ge=1, le=16)

    @field_validator("resolution")
    @classmethod
    def normalize_resolution(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("extension")
    @classmethod
    def normalize_extension(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lstrip(".")
        return v or None


class StagingConfig(BaseModel):
    """Shared staging directory and lock wait settings."""
    temp_folder: Path = Field(default_factory=default_temp_folder)
    lock_name: str = LOCK_FILE_NAME
    lock_timeout_s: Optional[float] = Field(default=600.0, gt=0)  # None = wait forever
    poll_interval_s: float = Field(default=1.0, gt=0)
    max_poll_interval_s: float = Field(default=30.0, gt=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)

    @field_validator("lock_name")
    @classmethod
    def validate_lock_name(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v or v in {".", ".."}:
            raise ValueError(f"Invalid lock file name: {v!r}")
        return v

    @model_validator(mode="after")
    def validate_intervals(self):
        if self.max_poll_interval_s < self.poll_interval_s:
            raise ValueError("max_poll_interval_s must be >= poll_interval_s")
        return self


class GeneralConfig(BaseModel):
    result_folder: Path = Field(default_factory=default_result_folder)
    log_path: Optional[Path] = None  # Defaults to <result_folder>/transcode.log
    debug: bool = False


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    transcode: TranscodeConfig = Field(default_factory=TranscodeConfig)
    staging: StagingConfig = Field(default_factory=StagingConfig)
