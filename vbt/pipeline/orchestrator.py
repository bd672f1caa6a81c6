"""Staging coordinator for one batch transcoding run.

Lifecycle of a run::

    Idle -> Waiting (marker present) -> Leased -> Staged -> Processing -> Cleared

The StagingLease wraps stage, collect and process, so the staging directory
is cleared and the lock marker released on every exit path, errors and
Ctrl+C included. Stage/collect failures are fatal (StagingError); per-file
transcoder failures are recorded on the job and the batch continues.
"""

import concurrent.futures
import logging
from pathlib import Path
from typing import Callable, List, Optional

from vbt.config.models import AppConfig
from vbt.config.resolution import scale_filter_for
from vbt.domain.errors import StagingError
from vbt.domain.events import JobCompleted, JobFailed, JobStarted, ProcessingFinished, StagingFinished
from vbt.domain.models import JobStatus, RunSummary, TranscodeJob
from vbt.infrastructure.event_bus import EventBus
from vbt.infrastructure.ffmpeg import FFmpegAdapter, output_path_for
from vbt.infrastructure.fs_tree import collect_files, stage_input
from vbt.infrastructure.staging_lock import StagingLease


class Orchestrator:
    """Runs stage -> collect -> transcode -> teardown under a staging lease.

    Args:
        config: AppConfig with transcode, staging and result folder settings.
        event_bus: EventBus for publishing run and job events.
        ffmpeg_adapter: FFmpegAdapter invoked once per staged file.
        lease_factory: Builds the StagingLease; defaults to one from config.staging.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        ffmpeg_adapter: FFmpegAdapter,
        lease_factory: Optional[Callable[[], StagingLease]] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.ffmpeg_adapter = ffmpeg_adapter
        self.logger = logging.getLogger(__name__)
        self._lease_factory = lease_factory or (
            lambda: StagingLease.from_config(self.config.staging, event_bus=self.event_bus)
        )

    def run(self, input_path: Path) -> RunSummary:
        """Processes one input file or directory.

        Raises:
            StagingError: input missing, copy/enumeration failed, or the
                result folder could not be created.
            LockError, LockTimeout: the staging directory could not be leased.
        """
        input_path = Path(input_path)
        if not (input_path.is_dir() or input_path.is_file()):
            raise StagingError(f"Input path does not exist or is not a file/directory: {input_path}", input_path)

        # Resolve once so an unknown keyword warns once per run, not per file
        scale_filter = scale_filter_for(self.config.transcode.resolution)
        summary = RunSummary()

        lease = self._lease_factory()
        with lease:
            files = self._stage(input_path, lease)
            summary.files_found = len(files)
            self._ensure_result_dir()

            jobs = [self._build_job(f) for f in files]
            self._process_jobs(jobs, scale_filter)

            summary.completed = sum(1 for j in jobs if j.status == JobStatus.COMPLETED)
            summary.failed = len(jobs) - summary.completed

        summary.teardown_ok = bool(lease.teardown_ok)
        self.logger.info(
            f"RUN_END: files={summary.files_found} completed={summary.completed} "
            f"failed={summary.failed} teardown_ok={summary.teardown_ok}"
        )
        self.event_bus.publish(ProcessingFinished(summary=summary))
        return summary

    def _stage(self, input_path: Path, lease: StagingLease) -> List[Path]:
        kind = "directory" if input_path.is_dir() else "file"
        self.logger.info(f"STAGE_START: copying {kind} {input_path} -> {lease.staging_dir}")
        try:
            stage_input(input_path, lease.staging_dir, exclude_name=lease.lock_name)
        except OSError as e:
            raise StagingError(f"Failed to copy {kind}: {e}", Path(e.filename) if e.filename else input_path) from e

        try:
            files = collect_files(lease.staging_dir, exclude_name=lease.lock_name)
        except OSError as e:
            raise StagingError(f"Failed to read files in temp folder: {e}", lease.staging_dir) from e

        self.logger.info(f"STAGE_END: {len(files)} files staged in {lease.staging_dir}")
        self.event_bus.publish(StagingFinished(input_path=input_path, staging_dir=lease.staging_dir, files_found=len(files)))
        return files

    def _ensure_result_dir(self):
        result_dir = self.config.general.result_folder
        try:
            result_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StagingError(f"Failed to create result folder '{result_dir}': {e}", result_dir) from e

    def _build_job(self, source: Path) -> TranscodeJob:
        return TranscodeJob(
            source_path=source,
            output_path=output_path_for(source, self.config.general.result_folder, self.config.transcode.extension),
        )

    def _process_jobs(self, jobs: List[TranscodeJob], scale_filter: str):
        workers = min(self.config.transcode.workers, max(1, len(jobs)))
        if workers <= 1:
            for job in jobs:
                self._process_job(job, scale_filter)
            return

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="vbt-worker")
        try:
            futures = [executor.submit(self._process_job, job, scale_filter) for job in jobs]
            for future in concurrent.futures.as_completed(futures):
                future.result()
        except KeyboardInterrupt:
            self.logger.info("Ctrl+C detected - cancelling queued files")
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        finally:
            executor.shutdown(wait=True)

    def _process_job(self, job: TranscodeJob, scale_filter: str):
        """Transcodes one file; never lets a per-file error escape."""
        self.logger.info(f"PROCESS_START: {job.source_path} -> {job.output_path}")
        self.event_bus.publish(JobStarted(job=job))
        try:
            self.ffmpeg_adapter.transcode(job, self.config.transcode, scale_filter, debug=self.config.general.debug)
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error_message = f"Exception processing {job.source_path.name}: {e}"
            self.logger.error(job.error_message)
            self.event_bus.publish(JobFailed(job=job, error_message=job.error_message))
            return

        if job.status == JobStatus.COMPLETED:
            self.event_bus.publish(JobCompleted(job=job))
        elif job.status != JobStatus.FAILED:
            # Adapter returned without a final status
            job.status = JobStatus.FAILED
            job.error_message = job.error_message or "Transcoder did not report a result"
            self.event_bus.publish(JobFailed(job=job, error_message=job.error_message))
