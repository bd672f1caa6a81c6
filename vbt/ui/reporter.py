import threading
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from vbt.infrastructure.event_bus import EventBus
from vbt.domain.events import (
    LockWaiting, LockAcquired, StagingFinished,
    JobStarted, JobCompleted, JobFailed,
    ProcessingFinished, TeardownFinished,
)


class ConsoleReporter:
    """Subscribes to EventBus and prints run progress to the terminal."""

    def __init__(self, bus: EventBus, console: Optional[Console] = None, err_console: Optional[Console] = None):
        self.bus = bus
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)
        self.total_files = 0
        self.started = 0
        self._lock = threading.Lock()  # Job events arrive from worker threads
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(LockWaiting, self.on_lock_waiting)
        self.bus.subscribe(LockAcquired, self.on_lock_acquired)
        self.bus.subscribe(StagingFinished, self.on_staging_finished)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(TeardownFinished, self.on_teardown_finished)
        self.bus.subscribe(ProcessingFinished, self.on_processing_finished)

    def on_lock_waiting(self, event: LockWaiting):
        holder = f" (held by {escape(event.holder)})" if event.holder else ""
        self.console.print(
            f"[yellow]{event.lock_path.name} exists{holder}, waiting {event.delay_s:.1f}s..., "
            f"force delete the {event.lock_path.name} if no other run is active[/yellow]"
        )

    def on_lock_acquired(self, event: LockAcquired):
        state = "created" if event.created_dir else "locked"
        self.console.print(f"Temp folder {state}: {escape(str(event.staging_dir))}")

    def on_staging_finished(self, event: StagingFinished):
        self.total_files = event.files_found
        kind = "directory" if event.input_path.is_dir() else "file"
        self.console.print(
            f"Input path is {kind}. Copied to temp folder, {event.files_found} file(s) to convert."
        )

    def on_job_started(self, event: JobStarted):
        with self._lock:
            self.started += 1
            self.console.print(
                f"[bold]Converting file {self.started}/{self.total_files}:[/bold]\n"
                f"  input: {escape(str(event.job.source_path))}\n"
                f"  output: {escape(str(event.job.output_path))}"
            )

    def on_job_completed(self, event: JobCompleted):
        self.console.print(f"[green]Successfully converted {escape(str(event.job.source_path))}[/green]")

    def on_job_failed(self, event: JobFailed):
        self.err_console.print(f"[red]{escape(event.error_message)}[/red]")

    def on_teardown_finished(self, event: TeardownFinished):
        if event.success:
            self.console.print("Temp folder cleared")
        else:
            self.err_console.print(f"[red]{escape(event.error_message or 'Failed to clear temp folder')}[/red]")

    def on_processing_finished(self, event: ProcessingFinished):
        summary = event.summary
        table = Table(title="Transcode summary", show_header=False)
        table.add_column("Metric")
        table.add_column("Value", justify="right")
        table.add_row("Files staged", str(summary.files_found))
        table.add_row("Converted", f"[green]{summary.completed}[/green]")
        table.add_row("Failed", f"[red]{summary.failed}[/red]" if summary.failed else "0")
        table.add_row("Temp folder cleared", "yes" if summary.teardown_ok else "[red]no[/red]")
        self.console.print(table)
