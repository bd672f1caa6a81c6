import typer
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import ValidationError

from vbt.config.loader import load_config
from vbt.config.models import AppConfig
from vbt.infrastructure.logging import setup_logging
from vbt.infrastructure.event_bus import EventBus
from vbt.infrastructure.ffmpeg import FFmpegAdapter
from vbt.infrastructure.staging_lock import StagingLease
from vbt.pipeline.orchestrator import Orchestrator
from vbt.ui.reporter import ConsoleReporter
from vbt.domain.errors import StagingError

app = typer.Typer(help="VBT (Video Batch Transcode) - staged batch conversion with ffmpeg", add_completion=False)

USAGE = (
    "Usage: vbt [--result-folder <folder>] [--resolution <resolution>] [--bitrate <number>] "
    "[--ffmpeg-path <path>] [--temp-folder <path>] [--extension <ext>] <directory/file>"
)


def split_extra_args(tokens: List[str]) -> Tuple[Optional[str], List[str]]:
    """Picks the input path out of leftover CLI tokens.

    The last token is the input unless it looks like a flag; every other
    token is unrecognized.
    """
    if tokens and not tokens[-1].startswith("-"):
        return tokens[-1], tokens[:-1]
    return None, list(tokens)


def apply_cli_overrides(config: AppConfig, **overrides) -> AppConfig:
    """Returns a re-validated copy of config with non-None CLI values applied."""
    data = config.model_dump()
    sections = {
        "fps": ("transcode", "fps"),
        "resolution": ("transcode", "resolution"),
        "bitrate": ("transcode", "bitrate_kbps"),
        "extension": ("transcode", "extension"),
        "ffmpeg_path": ("transcode", "ffmpeg_path"),
        "workers": ("transcode", "workers"),
        "result_folder": ("general", "result_folder"),
        "log_path": ("general", "log_path"),
        "temp_folder": ("staging", "temp_folder"),
        "lock_timeout": ("staging", "lock_timeout_s"),
    }
    for name, value in overrides.items():
        if value is None:
            continue
        section, field = sections[name]
        if name == "lock_timeout" and value <= 0:
            value = None  # 0 = wait forever
        data[section][field] = value
    if overrides.get("debug"):
        data["general"]["debug"] = True
    return AppConfig.model_validate(data)


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def transcode(
    ctx: typer.Context,
    input_arg: Optional[str] = typer.Argument(None, metavar="INPUT", help="File or directory to convert"),
    fps: Optional[int] = typer.Option(None, "--fps", help="Output frame rate (default 30)"),
    resolution: Optional[str] = typer.Option(None, "--resolution", help="1080p, 720p, 480p, 360p, 240p or 144p (default 720p)"),
    bitrate: Optional[int] = typer.Option(None, "--bitrate", help="Video bitrate in kbit/s (default 3000)"),
    result_folder: Optional[Path] = typer.Option(None, "--result-folder", "--resultFolder", help="Output folder (default <exe_dir>/results)"),
    temp_folder: Optional[Path] = typer.Option(None, "--temp-folder", "--tempFolder", help="Shared staging folder (default <exe_dir>/temp)"),
    extension: Optional[str] = typer.Option(None, "--extension", help="Force output extension, e.g. mp4"),
    ffmpeg_path: Optional[Path] = typer.Option(None, "--ffmpeg-path", "--ffmpegPath", help="Path to the ffmpeg executable"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Files converted in parallel (default 1)"),
    lock_timeout: Optional[float] = typer.Option(None, "--lock-timeout", help="Seconds to wait for folder.lock (0 = forever)"),
    break_lock: bool = typer.Option(False, "--break-lock", help="Delete a stale folder.lock before starting"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (default <result_folder>/transcode.log)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Stage INPUT into the temp folder, convert every file with ffmpeg and clear the temp folder."""
    tokens = ([input_arg] if input_arg is not None else []) + list(ctx.args)
    input_value, unknown_args = split_extra_args(tokens)

    for arg in unknown_args:
        typer.secho(f"Unknown or malformed parameter: {arg}", fg=typer.colors.YELLOW, err=True)

    if not input_value:
        typer.echo(USAGE, err=True)
        raise typer.Exit(code=1)

    try:
        config = load_config(config_path) if config_path else AppConfig()
        config = apply_cli_overrides(
            config,
            fps=fps,
            resolution=resolution,
            bitrate=bitrate,
            extension=extension,
            ffmpeg_path=ffmpeg_path,
            workers=workers,
            result_folder=result_folder,
            log_path=log_path,
            temp_folder=temp_folder,
            lock_timeout=lock_timeout,
            debug=debug,
        )
    except (FileNotFoundError, ValueError, ValidationError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    try:
        logger = setup_logging(config.general.result_folder, debug=config.general.debug, log_path=config.general.log_path)
    except OSError as e:
        typer.secho(f"Failed to create result folder '{config.general.result_folder}': {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    for arg in unknown_args:
        logger.warning(f"Unknown or malformed parameter: {arg}")
    logger.info(f"VBT started: input={input_value}")
    logger.info(
        f"Config: fps={config.transcode.fps}, resolution={config.transcode.resolution}, "
        f"bitrate={config.transcode.bitrate_kbps}k, workers={config.transcode.workers}, "
        f"temp={config.staging.temp_folder}, results={config.general.result_folder}, ffmpeg={config.transcode.ffmpeg_path}"
    )

    bus = EventBus()
    ConsoleReporter(bus)
    ffmpeg = FFmpegAdapter(event_bus=bus)
    orchestrator = Orchestrator(config=config, event_bus=bus, ffmpeg_adapter=ffmpeg)

    try:
        if break_lock and StagingLease.from_config(config.staging).break_lock():
            typer.secho(f"Removed stale lock in {config.staging.temp_folder}", fg=typer.colors.YELLOW)
        orchestrator.run(Path(input_value))

    except KeyboardInterrupt:
        logger.info("Interrupted by user (Ctrl+C)")
        typer.secho("\n✓ Transcoding stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except StagingError as e:
        logger.error(f"Fatal: {e}")
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    except Exception as e:
        logger.exception(f"Fatal Error: {e}")
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

if __name__ == "__main__":
    app()
