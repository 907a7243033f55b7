"""Tests for ffmpeg command building and error handling."""
import asyncio
import json
import sys

import pytest

from reelforge.utils import ffmpeg
from reelforge.utils.ffmpeg import (
    FFmpegError,
    build_concat_command,
    build_extract_command,
    concat_segments,
    extract_segment,
    probe_duration,
    write_concat_list,
)


def _fake_process(returncode=0, stdout="", stderr=""):
    calls = []

    async def run(cmd, timeout=None):
        calls.append(list(cmd))
        return returncode, stdout, stderr

    run.calls = calls
    return run


def test_extract_command_cpu_normalizes_output():
    cmd = build_extract_command("in.mkv", 12.5, 30, "out.mp4", use_gpu=False)

    assert cmd[cmd.index("-ss") + 1] == "12.500"
    assert cmd[cmd.index("-t") + 1] == "30.000"
    assert cmd.index("-ss") < cmd.index("-i")
    assert "scale=1920:1080:force_original_aspect_ratio=decrease" in cmd[cmd.index("-vf") + 1]
    assert "pad=1920:1080" in cmd[cmd.index("-vf") + 1]
    assert cmd[cmd.index("-r") + 1] == "30"
    assert cmd[cmd.index("-c:v") + 1] == "libx264"
    assert cmd[cmd.index("-preset") + 1] == "fast"
    assert cmd[cmd.index("-ar") + 1] == "44100"
    assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
    assert cmd[-1] == "out.mp4"


def test_extract_command_gpu():
    cmd = build_extract_command("in.mkv", 0, 5, "out.mp4", use_gpu=True)

    assert cmd[cmd.index("-c:v") + 1] == "h264_nvenc"
    assert cmd[cmd.index("-preset") + 1] == "p7"


def test_concat_command_presets(tmp_path):
    list_path = tmp_path / "list.txt"

    cpu = build_concat_command(list_path, "reel.mp4", use_gpu=False)
    gpu = build_concat_command(list_path, "reel.mp4", use_gpu=True)

    assert cpu[cpu.index("-f") + 1] == "concat"
    assert cpu[cpu.index("-safe") + 1] == "0"
    assert cpu[cpu.index("-preset") + 1] == "medium"
    assert gpu[gpu.index("-c:v") + 1] == "h264_nvenc"


def test_concat_list_escapes_quotes(tmp_path):
    weird = tmp_path / "it's a clip.mp4"
    plain = tmp_path / "plain.mp4"

    list_path = write_concat_list([weird, plain], tmp_path / "list.txt")
    lines = list_path.read_text(encoding="utf-8").splitlines()

    assert lines[0] == f"file '{tmp_path.as_posix()}/it'\\''s a clip.mp4'"
    assert lines[1] == f"file '{plain.as_posix()}'"


@pytest.mark.asyncio
async def test_extract_failure_carries_stderr(monkeypatch, tmp_path):
    monkeypatch.setattr(ffmpeg, "_run_process", _fake_process(1, stderr="moov atom not found"))

    with pytest.raises(FFmpegError) as exc_info:
        await extract_segment("in.mp4", 0, 5, tmp_path / "nested" / "seg.mp4")

    assert exc_info.value.stderr == "moov atom not found"
    assert (tmp_path / "nested").is_dir()


@pytest.mark.asyncio
async def test_concat_requires_segments(tmp_path):
    with pytest.raises(FFmpegError):
        await concat_segments([], tmp_path / "reel.mp4")


@pytest.mark.asyncio
async def test_concat_writes_list_and_runs(monkeypatch, tmp_path):
    fake = _fake_process(0, stderr="done")
    monkeypatch.setattr(ffmpeg, "_run_process", fake)

    result = await concat_segments([tmp_path / "a.mp4"], tmp_path / "out" / "reel.mp4")

    assert result == "done"
    assert (tmp_path / "out").is_dir()
    assert fake.calls[0][-1] == str(tmp_path / "out" / "reel.mp4")


@pytest.mark.asyncio
async def test_probe_duration_parses_format(monkeypatch, tmp_path):
    video = tmp_path / "v.mp4"
    video.write_bytes(b"")
    payload = json.dumps({"format": {"duration": "123.456"}})
    monkeypatch.setattr(ffmpeg, "_run_process", _fake_process(0, stdout=payload))

    assert await probe_duration(video) == pytest.approx(123.456)


@pytest.mark.asyncio
async def test_probe_duration_missing_file(tmp_path):
    with pytest.raises(FFmpegError):
        await probe_duration(tmp_path / "nope.mp4")


@pytest.mark.asyncio
async def test_probe_duration_without_duration(monkeypatch, tmp_path):
    video = tmp_path / "v.mp4"
    video.write_bytes(b"")
    monkeypatch.setattr(ffmpeg, "_run_process", _fake_process(0, stdout="{}"))

    with pytest.raises(FFmpegError):
        await probe_duration(video)


@pytest.mark.asyncio
async def test_run_process_missing_executable():
    with pytest.raises(FFmpegError):
        await ffmpeg._run_process(["/nonexistent/ffmpeg-binary", "-version"])


SLEEPER = [sys.executable, "-c", "import time; time.sleep(30)"]


@pytest.mark.asyncio
async def test_run_process_timeout_kills_child():
    with pytest.raises(FFmpegError) as exc_info:
        await asyncio.wait_for(ffmpeg._run_process(SLEEPER, timeout=0.5), 10)

    assert "timed out after 0.5s" in str(exc_info.value)


@pytest.mark.asyncio
async def test_run_process_cancel_reaps_child(monkeypatch):
    spawned = []
    real_exec = asyncio.create_subprocess_exec

    async def tracking_exec(*args, **kwargs):
        proc = await real_exec(*args, **kwargs)
        spawned.append(proc)
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", tracking_exec)

    task = asyncio.create_task(ffmpeg._run_process(SLEEPER))
    while not spawned:
        await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert spawned[0].returncode is not None
