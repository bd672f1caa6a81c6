import yaml
from pathlib import Path
from .models import AppConfig, TranscodeConfig


def load_config(config_path: Path) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping: {config_path}")

    # Flat keys (fps: 25) are accepted as shorthand for the transcode section
    transcode_keys = set(TranscodeConfig.model_fields)
    flat = {k: data.pop(k) for k in list(data) if k in transcode_keys}
    if flat:
        section = data.setdefault("transcode", {}) or {}
        data["transcode"] = {**flat, **section}

    return AppConfig(**data)
