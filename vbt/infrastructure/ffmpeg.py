import subprocess
import logging
import time
from pathlib import Path
from typing import List, Optional
from vbt.domain.models import TranscodeJob, JobStatus
from vbt.config.models import TranscodeConfig
from vbt.config.resolution import scale_filter_for
from vbt.infrastructure.event_bus import EventBus
from vbt.domain.events import JobFailed

STDERR_TAIL_LINES = 5


def output_path_for(source: Path, result_dir: Path, extension: Optional[str] = None) -> Path:
    """Same base name inside result_dir, with the extension replaced when one is forced."""
    output = result_dir / source.name
    if extension:
        output = output.with_suffix(f".{extension.lstrip('.')}")
    return output


class FFmpegAdapter:
    """Runs the external transcoder once per staged file."""

    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

    def _build_command(self, job: TranscodeJob, config: TranscodeConfig, scale_filter: str) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        return [
            str(config.ffmpeg_path),
            "-y",  # Overwrite output files
            "-i", str(job.source_path),
            "-r", str(config.fps),
            "-b:v", f"{config.bitrate_kbps}k",
            "-vf", scale_filter,
            str(job.output_path),
        ]

    def transcode(self, job: TranscodeJob, config: TranscodeConfig, scale_filter: Optional[str] = None, debug: bool = False) -> TranscodeJob:
        """Executes ffmpeg synchronously and records the outcome on the job.

        Never raises for ffmpeg failures: a non-zero exit or a launch error
        marks the job FAILED and publishes JobFailed.
        """
        filename = job.source_path.name
        if scale_filter is None:
            scale_filter = scale_filter_for(config.resolution)

        cmd = self._build_command(job, config, scale_filter)
        if debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        job.status = JobStatus.PROCESSING
        start_time = time.monotonic()
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, errors="replace")
        except OSError as e:
            job.duration_seconds = time.monotonic() - start_time
            return self._fail(job, f"Failed to execute ffmpeg for file {job.source_path}: {e}")

        job.duration_seconds = time.monotonic() - start_time
        job.return_code = result.returncode

        if result.returncode != 0:
            tail = (result.stderr or "").strip().splitlines()[-STDERR_TAIL_LINES:]
            if tail:
                self.logger.debug(f"FFMPEG_STDERR: {filename}\n" + "\n".join(tail))
            return self._fail(job, f"ffmpeg exited with code {result.returncode} for file {job.source_path}")

        job.status = JobStatus.COMPLETED
        self.logger.info(f"FFMPEG_END: {filename} status=completed elapsed={job.duration_seconds:.2f}s")
        return job

    def _fail(self, job: TranscodeJob, message: str) -> TranscodeJob:
        job.status = JobStatus.FAILED
        job.error_message = message
        self.logger.error(f"FFMPEG_END: {job.source_path.name} status=failed ({message})")
        self.event_bus.publish(JobFailed(job=job, error_message=message))
        return job
