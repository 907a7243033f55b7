"""Shared fakes for pipeline and session tests."""
import asyncio
from pathlib import Path

import pytest

from reelforge.utils.ffmpeg import FFmpegError
from reelforge.workers.reporting import RunReporter


class RecordingReporter(RunReporter):
    """RunReporter that remembers every progress update and outcome."""

    def __init__(self):
        super().__init__(history_size=1000)
        self.progress_history = []
        self.finished_calls = []

    async def progress(self, percent):
        await super().progress(percent)
        self.progress_history.append(percent)

    async def finished(self, outcome):
        await super().finished(outcome)
        self.finished_calls.append(outcome)


class FakeMedia:
    """In-memory stand-in for ffprobe/ffmpeg that writes tiny files."""

    def __init__(self, durations=None, delay=0.0):
        self.durations = durations or {}
        self.delay = delay
        self.fail_extract = lambda source, start: False
        self.concat_error = None
        self.gate = None
        self.extract_calls = []
        self.concat_calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, path):
        if path not in self.durations:
            raise FFmpegError(f"ffprobe failed: {path}: No such file or directory")
        return self.durations[path]

    async def extract(self, source, start, duration, output_path, use_gpu):
        self.extract_calls.append((source, start, duration, output_path, use_gpu))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(self.delay)
            if self.fail_extract(source, start):
                raise FFmpegError("ffmpeg extract failed with exit code 1", "Invalid data found")
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            Path(output_path).write_bytes(b"segment")
            return ""
        finally:
            self.in_flight -= 1

    async def concat(self, paths, output_path, use_gpu):
        self.concat_calls.append((list(paths), output_path, use_gpu))
        if self.concat_error is not None:
            raise self.concat_error
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_bytes(b"reel")
        return ""


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def media():
    return FakeMedia()


@pytest.fixture
def scratch_dir(tmp_path):
    path = tmp_path / "segments"
    path.mkdir()
    return path
