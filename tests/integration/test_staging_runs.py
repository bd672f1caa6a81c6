"""End-to-end runs through the CLI with a shell script standing in for ffmpeg."""
import pytest
from typer.testing import CliRunner
from vbt import main as vbt_main

pytestmark = pytest.mark.integration


def _invoke(tmp_path, fake_ffmpeg_script, *extra):
    runner = CliRunner()
    return runner.invoke(
        vbt_main.app,
        [
            "--ffmpeg-path", str(fake_ffmpeg_script),
            "--temp-folder", str(tmp_path / "temp"),
            "--result-folder", str(tmp_path / "results"),
            "--lock-timeout", "5",
            *extra,
        ],
    )


def test_directory_run_end_to_end(tmp_path, input_tree, fake_ffmpeg_script):
    result = _invoke(tmp_path, fake_ffmpeg_script, str(input_tree))

    assert result.exit_code == 0, result.output
    results = tmp_path / "results"
    assert (results / "a.mp4").read_bytes() == (input_tree / "a.mp4").read_bytes()
    assert (results / "b.mov").exists()
    assert (results / "c.mp4").exists()
    assert list((tmp_path / "temp").iterdir()) == []
    assert "Temp folder cleared" in result.output

    log = (results / "transcode.log").read_text()
    assert "LOCK_ACQUIRED" in log
    assert "TEARDOWN" in log


def test_failed_file_keeps_exit_code_zero(tmp_path, input_tree, fake_ffmpeg_script):
    (input_tree / "broken.mp4").write_bytes(b"garbage")

    result = _invoke(tmp_path, fake_ffmpeg_script, str(input_tree))

    assert result.exit_code == 0, result.output
    results = tmp_path / "results"
    assert not (results / "broken.mp4").exists()
    assert {"a.mp4", "b.mov", "c.mp4"} <= {p.name for p in results.iterdir()}
    assert "ffmpeg exited with code 1" in result.output
    assert list((tmp_path / "temp").iterdir()) == []


def test_single_file_with_forced_extension(tmp_path, fake_ffmpeg_script):
    source = tmp_path / "clip.mov"
    source.write_bytes(b"frames")

    result = _invoke(tmp_path, fake_ffmpeg_script, "--extension", "mp4", str(source))

    assert result.exit_code == 0, result.output
    assert (tmp_path / "results" / "clip.mp4").read_bytes() == b"frames"


def test_missing_ffmpeg_is_per_file_failure(tmp_path, input_tree):
    runner = CliRunner()
    result = runner.invoke(
        vbt_main.app,
        [
            "--ffmpeg-path", str(tmp_path / "no-such-ffmpeg"),
            "--temp-folder", str(tmp_path / "temp"),
            "--result-folder", str(tmp_path / "results"),
            str(input_tree),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Failed to execute ffmpeg" in result.output
    assert list((tmp_path / "temp").iterdir()) == []


def test_unknown_resolution_is_not_fatal(tmp_path, input_tree, fake_ffmpeg_script):
    result = _invoke(tmp_path, fake_ffmpeg_script, "--resolution", "4k", str(input_tree))

    assert result.exit_code == 0, result.output
    log = (tmp_path / "results" / "transcode.log").read_text()
    assert "Unknown resolution '4k', using original size" in log


def test_missing_input_exits_1_and_leaves_no_lock(tmp_path, fake_ffmpeg_script):
    result = _invoke(tmp_path, fake_ffmpeg_script, str(tmp_path / "missing"))

    assert result.exit_code == 1
    assert "does not exist" in result.output
    assert not (tmp_path / "temp" / "folder.lock").exists()


def test_locked_staging_times_out(tmp_path, input_tree, fake_ffmpeg_script):
    staging = tmp_path / "temp"
    staging.mkdir()
    (staging / "folder.lock").write_text("lock")

    result = _invoke(tmp_path, fake_ffmpeg_script, "--lock-timeout", "0.2", str(input_tree))

    assert result.exit_code == 1
    assert "Timed out" in result.output
    assert (staging / "folder.lock").exists()
    assert not (tmp_path / "results" / "a.mp4").exists()


def test_break_lock_recovers_stale_marker(tmp_path, input_tree, fake_ffmpeg_script):
    staging = tmp_path / "temp"
    staging.mkdir()
    (staging / "folder.lock").write_text("left behind by a crashed run")

    result = _invoke(tmp_path, fake_ffmpeg_script, "--break-lock", str(input_tree))

    assert result.exit_code == 0, result.output
    assert (tmp_path / "results" / "a.mp4").exists()
    assert list(staging.iterdir()) == []


def test_two_sequential_runs_reuse_staging(tmp_path, input_tree, fake_ffmpeg_script):
    (tmp_path / "temp").mkdir()

    first = _invoke(tmp_path, fake_ffmpeg_script, str(input_tree))
    assert first.exit_code == 0, first.output
    assert list((tmp_path / "temp").iterdir()) == []

    second = _invoke(tmp_path, fake_ffmpeg_script, str(input_tree))
    assert second.exit_code == 0, second.output
    assert list((tmp_path / "temp").iterdir()) == []


def test_input_containing_lock_name_is_released(tmp_path, fake_ffmpeg_script):
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    (input_dir / "a.mp4").write_bytes(b"frames")
    (input_dir / "folder.lock").write_text("not ours")

    first = _invoke(tmp_path, fake_ffmpeg_script, str(input_dir))

    assert first.exit_code == 0, first.output
    assert (tmp_path / "results" / "a.mp4").exists()
    assert list((tmp_path / "temp").iterdir()) == []
    assert "no longer owned" not in (tmp_path / "results" / "transcode.log").read_text()

    second = _invoke(tmp_path, fake_ffmpeg_script, "--lock-timeout", "0.2", str(input_dir))
    assert second.exit_code == 0, second.output


def test_single_input_file_named_like_lock(tmp_path, fake_ffmpeg_script):
    source = tmp_path / "folder.lock"
    source.write_text("not ours")

    result = _invoke(tmp_path, fake_ffmpeg_script, str(source))

    assert result.exit_code == 0, result.output
    assert "0 file(s) to convert" in result.output
    assert list((tmp_path / "temp").iterdir()) == []
