import logging
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "transcode.log"

def setup_logging(result_dir: Path, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration for VBT.

    Creates the result directory and its transcode.log file.
    Returns configured logger instance.

    Args:
        result_dir: Directory where converted files are written
        debug: If True, enable DEBUG level logging (ffmpeg command lines, timings)
        log_path: Optional path to log file (overrides result_dir)
    """
    result_dir.mkdir(parents=True, exist_ok=True)

    log_file = Path(log_path) if log_path else (result_dir / LOG_FILE_NAME)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(log_file)],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
