"""Lease over the shared staging directory.

A run owns the staging directory while the lock marker (``folder.lock``) it
created exists. The marker is created with ``O_CREAT | O_EXCL`` so two runs
can never both believe they hold it. Waiting runs retry with exponential
backoff until the marker disappears or the configured timeout expires.

Usage::

    with StagingLease.from_config(config.staging, event_bus=bus) as lease:
        stage_input(input_path, lease.staging_dir, exclude_name=lease.lock_name)
        ...
    # staging directory is cleared and the marker removed here, even on errors
"""

import json
import logging
import os
import socket
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from vbt.config.models import LOCK_FILE_NAME, StagingConfig
from vbt.domain.errors import LockError, LockTimeout
from vbt.domain.events import LockAcquired, LockWaiting, TeardownFinished
from vbt.infrastructure.event_bus import EventBus
from vbt.infrastructure.fs_tree import clear_children


class StagingLease:
    """Exclusive, self-releasing claim on a staging directory.

    Args:
        staging_dir: Shared working directory (created with its ancestors if missing).
        lock_name: Marker file name inside ``staging_dir``.
        timeout_s: Give up with LockTimeout after this many seconds; None waits forever.
        poll_interval_s: First retry delay.
        max_poll_interval_s: Upper bound for the retry delay.
        backoff_factor: Delay multiplier applied after every retry.
        event_bus: Optional bus for LockWaiting/LockAcquired/TeardownFinished.
        sleep, clock: Injectable for tests.
    """

    def __init__(
        self,
        staging_dir: Path,
        lock_name: str = LOCK_FILE_NAME,
        timeout_s: Optional[float] = 600.0,
        poll_interval_s: float = 1.0,
        max_poll_interval_s: float = 30.0,
        backoff_factor: float = 2.0,
        event_bus: Optional[EventBus] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.staging_dir = Path(staging_dir)
        self.lock_name = lock_name
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s
        self.max_poll_interval_s = max(max_poll_interval_s, poll_interval_s)
        self.backoff_factor = backoff_factor
        self.event_bus = event_bus
        self._sleep = sleep
        self._clock = clock
        self.logger = logging.getLogger(__name__)

        self.created_dir = False
        self.teardown_ok: Optional[bool] = None
        self._token: Optional[str] = None

    @classmethod
    def from_config(cls, config: StagingConfig, event_bus: Optional[EventBus] = None, **kwargs) -> "StagingLease":
        return cls(
            staging_dir=config.temp_folder,
            lock_name=config.lock_name,
            timeout_s=config.lock_timeout_s,
            poll_interval_s=config.poll_interval_s,
            max_poll_interval_s=config.max_poll_interval_s,
            backoff_factor=config.backoff_factor,
            event_bus=event_bus,
            **kwargs,
        )

    @property
    def lock_path(self) -> Path:
        return self.staging_dir / self.lock_name

    @property
    def held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> "StagingLease":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and self.held:
            self.logger.warning(f"TEARDOWN: releasing {self.staging_dir} after {exc_type.__name__}")
        self.release()
        return False

    # ------------------------------------------------------------------
    # Acquire
    # ------------------------------------------------------------------

    def acquire(self) -> "StagingLease":
        """Blocks until this run owns the staging directory.

        Raises:
            LockError: the directory or the marker could not be created.
            LockTimeout: the marker did not disappear within ``timeout_s``.
        """
        if self.held:
            raise LockError(f"Lease already held: {self.lock_path}", self.lock_path)

        start = self._clock()
        delay = self.poll_interval_s
        attempt = 0

        while True:
            self.created_dir = self._ensure_staging_dir() or self.created_dir
            if self._try_create_marker():
                self.logger.info(
                    f"LOCK_ACQUIRED: {self.lock_path} (created_dir={self.created_dir}, attempts={attempt + 1})"
                )
                self._publish(LockAcquired(staging_dir=self.staging_dir, created_dir=self.created_dir))
                return self

            attempt += 1
            elapsed = self._clock() - start
            holder = self.read_holder()
            if self.timeout_s is not None and elapsed >= self.timeout_s:
                self.logger.error(f"LOCK_TIMEOUT: {self.lock_path} after {elapsed:.1f}s (holder: {holder or 'unknown'})")
                raise LockTimeout(
                    f"Timed out after {elapsed:.1f}s waiting for {self.lock_path} "
                    f"(held by {holder or 'unknown'}); delete it manually or use --break-lock if the holder is gone",
                    path=self.lock_path,
                    waited_s=elapsed,
                    holder=holder,
                )

            wait = delay
            if self.timeout_s is not None:
                wait = min(wait, self.timeout_s - elapsed)
            self.logger.info(f"LOCK_WAIT: {self.lock_path} exists, retry {attempt} in {wait:.1f}s")
            self._publish(LockWaiting(lock_path=self.lock_path, attempt=attempt, delay_s=wait, holder=holder))
            self._sleep(wait)
            delay = min(delay * self.backoff_factor, self.max_poll_interval_s)

    def _ensure_staging_dir(self) -> bool:
        """Creates the staging directory if needed; returns True if this call created it."""
        if self.staging_dir.is_dir():
            return False
        try:
            self.staging_dir.mkdir(parents=True)
            return True
        except FileExistsError:
            if self.staging_dir.is_dir():
                return False  # Another run created it first
            raise LockError(f"Temp folder path exists but is not a directory: {self.staging_dir}", self.staging_dir)
        except OSError as e:
            raise LockError(f"Failed to create temp folder '{self.staging_dir}': {e}", self.staging_dir) from e

    def _try_create_marker(self) -> bool:
        token = uuid.uuid4().hex
        record = {
            "pid": os.getpid(),
            "host": socket.gethostname(),
            "acquired_at": datetime.now().isoformat(timespec="seconds"),
            "token": token,
        }
        try:
            fd = os.open(str(self.lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as e:
            raise LockError(f"Failed to create lock file '{self.lock_path}': {e}", self.lock_path) from e

        try:
            with os.fdopen(fd, "w") as f:
                json.dump(record, f)
        except OSError as e:
            self.lock_path.unlink(missing_ok=True)
            raise LockError(f"Failed to write to lock file '{self.lock_path}': {e}", self.lock_path) from e

        self._token = token
        return True

    # ------------------------------------------------------------------
    # Inspect / break
    # ------------------------------------------------------------------

    def _read_record(self) -> Optional[dict]:
        try:
            data = json.loads(self.lock_path.read_text())
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            return {}  # Legacy or foreign marker without a record
        return data if isinstance(data, dict) else {}

    def read_holder(self) -> Optional[str]:
        """Human readable description of the current marker owner, if any."""
        record = self._read_record()
        if not record:
            return None
        return f"pid {record.get('pid', '?')} on {record.get('host', '?')} since {record.get('acquired_at', '?')}"

    def break_lock(self) -> bool:
        """Removes an existing marker regardless of its owner. Returns True if one was removed."""
        holder = self.read_holder()
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise LockError(f"Failed to delete lock file '{self.lock_path}': {e}", self.lock_path) from e
        self.logger.warning(f"LOCK_BROKEN: removed {self.lock_path} (holder: {holder or 'unknown'})")
        return True

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release(self) -> bool:
        """Clears the staging directory, then removes the marker.

        The marker goes last so a waiting run cannot start staging while the
        old contents are still being deleted. Errors are logged, never raised.
        Returns True if the directory was cleared.
        """
        if not self.held:
            return True

        record = self._read_record()
        if record is not None and record.get("token") != self._token:
            # Marker was broken and re-acquired by another run: its files are not ours to delete.
            self.logger.warning(f"TEARDOWN: lock {self.lock_path} no longer owned by this run, skipping cleanup")
            self._token = None
            self.teardown_ok = False
            self._publish(TeardownFinished(
                staging_dir=self.staging_dir, success=False, error_message="lock ownership lost"
            ))
            return False

        success = True
        error_message = None
        try:
            clear_children(self.staging_dir, exclude=self.lock_name)
        except OSError as e:
            success = False
            error_message = f"Failed to clear temp folder: {e}"
            self.logger.error(f"TEARDOWN: {error_message}")

        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError as e:
            success = False
            error_message = error_message or f"Failed to delete lock file: {e}"
            self.logger.error(f"TEARDOWN: failed to delete {self.lock_path}: {e}")

        self._token = None
        self.teardown_ok = success
        if success:
            self.logger.info(f"TEARDOWN: {self.staging_dir} cleared")
        self._publish(TeardownFinished(staging_dir=self.staging_dir, success=success, error_message=error_message))
        return success

    def _publish(self, event):
        if self.event_bus is not None:
            self.event_bus.publish(event)
