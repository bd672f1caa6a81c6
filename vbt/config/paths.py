import sys
from pathlib import Path


def executable_dir() -> Path:
    """Directory of the running entry script (falls back to the CWD)."""
    try:
        return Path(sys.argv[0]).resolve().parent
    except (IndexError, OSError):
        return Path(".")


def default_temp_folder() -> Path:
    return executable_dir() / "temp"


def default_result_folder() -> Path:
    return executable_dir() / "results"


def default_ffmpeg_path() -> Path:
    if sys.platform == "win32":
        return executable_dir() / "libraries" / "ffmpeg.exe"
    return Path("/usr/bin/ffmpeg")
