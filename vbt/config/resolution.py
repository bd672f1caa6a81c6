import logging
from typing import Dict

PASSTHROUGH_FILTER = "scale=iw:ih"

RESOLUTION_FILTERS: Dict[str, str] = {
    "1080p": "scale=-2:1080",
    "720p": "scale=-2:720",
    "480p": "scale=-2:480",
    "360p": "scale=-2:360",
    "240p": "scale=-2:240",
    "144p": "scale=-2:144",
}

logger = logging.getLogger(__name__)


def scale_filter_for(resolution: str) -> str:
    """Maps a resolution keyword to an ffmpeg -vf filter.

    Unknown keywords keep the original size and log a warning.
    """
    scale_filter = RESOLUTION_FILTERS.get(resolution)
    if scale_filter is None:
        logger.warning(f"Unknown resolution '{resolution}', using original size")
        return PASSTHROUGH_FILTER
    return scale_filter
