import sys
import pytest
from pathlib import Path
from unittest.mock import MagicMock
from vbt.config.models import AppConfig
from vbt.domain.models import JobStatus
from vbt.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config(tmp_path):
    """Returns an AppConfig whose folders live under tmp_path and whose lock wait is fast."""
    return AppConfig(
        general={
            "result_folder": tmp_path / "results",
            "debug": False,
        },
        transcode={
            "fps": 30,
            "resolution": "720p",
            "bitrate_kbps": 3000,
            "extension": None,
            "ffmpeg_path": "/usr/bin/ffmpeg",
            "workers": 1,
        },
        staging={
            "temp_folder": tmp_path / "temp",
            "lock_timeout_s": 2.0,
            "poll_interval_s": 0.01,
            "max_poll_interval_s": 0.05,
        },
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "vbt.yaml"
    conf_file.write_text(
        "general:\n"
        f"  result_folder: {tmp_path / 'results'}\n"
        "transcode:\n"
        "  fps: 25\n"
        "  resolution: 480p\n"
        "  bitrate_kbps: 1500\n"
        "staging:\n"
        f"  temp_folder: {tmp_path / 'temp'}\n"
        "  lock_timeout_s: 5\n"
    )
    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def input_tree(tmp_path):
    """Creates an input directory with a.mp4, b.mov and sub/c.mp4."""
    input_dir = tmp_path / "input"
    (input_dir / "sub").mkdir(parents=True)
    (input_dir / "a.mp4").write_bytes(b"dummy video a " * 50)
    (input_dir / "b.mov").write_bytes(b"dummy video b " * 50)
    (input_dir / "sub" / "c.mp4").write_bytes(b"dummy video c " * 50)
    return input_dir

# ============================================================================
# Transcoder Fixtures
# ============================================================================

@pytest.fixture
def fake_ffmpeg():
    """FFmpegAdapter double that 'converts' by copying bytes to the output path.

    Files whose name contains "broken" fail like a non-zero ffmpeg exit.
    """
    adapter = MagicMock()
    adapter.calls = []

    def _transcode(job, config, scale_filter=None, debug=False):
        adapter.calls.append((job.source_path.name, scale_filter))
        if "broken" in job.source_path.name:
            job.status = JobStatus.FAILED
            job.return_code = 1
            job.error_message = f"ffmpeg exited with code 1 for file {job.source_path}"
        else:
            job.output_path.write_bytes(job.source_path.read_bytes())
            job.status = JobStatus.COMPLETED
        return job

    adapter.transcode.side_effect = _transcode
    return adapter

@pytest.fixture
def fake_ffmpeg_script(tmp_path):
    """Executable shell script standing in for ffmpeg: copies -i input to the last argument.

    Exits 1 when the input name contains "broken".
    """
    if sys.platform == "win32":
        pytest.skip("shell script transcoder requires a POSIX shell")
    script = tmp_path / "bin" / "ffmpeg"
    script.parent.mkdir()
    script.write_text(
        "#!/bin/sh\n"
        "in=''\n"
        "prev=''\n"
        "for arg in \"$@\"; do\n"
        "  if [ \"$prev\" = '-i' ]; then in=\"$arg\"; fi\n"
        "  prev=\"$arg\"\n"
        "  out=\"$arg\"\n"
        "done\n"
        "case \"$(basename \"$in\")\" in *broken*) echo 'Invalid data found when processing input' >&2; exit 1;; esac\n"
        "cp \"$in\" \"$out\"\n"
    )
    script.chmod(0o755)
    return script


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
