"""Tests for the HTTP API and run history persistence."""
import asyncio

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from reelforge.api.schemas import RunConfig
from reelforge.db.database import Base, get_db
from reelforge.main import app
from reelforge.models.run import RunOutcome, RunRecord, SessionState
from reelforge.workers import session as session_module
from reelforge.workers.reporting import PersistingReporter
from reelforge.workers.session import JobSession


RUN_PAYLOAD = {
    "files": ["a.mp4", "b.mp4"],
    "count_min": 3,
    "count_max": 3,
    "segment_min": 10,
    "segment_max": 10,
    "output_path": "reel.mp4",
}


async def make_session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def api_client():
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def gated_session(monkeypatch, media, reporter, scratch_dir, tmp_path):
    media.durations = {"a.mp4": 100.0, "b.mp4": 100.0}
    media.gate = asyncio.Event()
    job_session = JobSession(
        prober=media.probe,
        transcoder=media.extract,
        concatenator=media.concat,
        reporter=reporter,
        scratch_dir=scratch_dir,
    )
    monkeypatch.setattr(session_module, "job_session", job_session)
    return job_session


@pytest.mark.asyncio
async def test_health_reports_missing_binaries(monkeypatch):
    from reelforge.api import routes

    monkeypatch.setattr(routes, "check_ffmpeg_available", lambda: True)
    monkeypatch.setattr(routes, "check_ffprobe_available", lambda: False)

    async with api_client() as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["ffprobe_available"] is False
    assert "ffprobe" in body["message"]


@pytest.mark.asyncio
async def test_start_stop_and_status(gated_session, media, tmp_path):
    payload = dict(RUN_PAYLOAD, output_path=str(tmp_path / "reel.mp4"))

    async with api_client() as client:
        response = await client.post("/api/runs", json=payload)
        assert response.status_code == 202
        assert response.json()["started"] is True

        response = await client.post("/api/runs", json=payload)
        assert response.status_code == 409

        response = await client.get("/api/runs/current")
        assert response.json()["running"] is True
        assert response.json()["state"] == "running"

        response = await client.post("/api/runs/stop")
        assert response.status_code == 200
        assert response.json()["stopping"] is True

        media.gate.set()
        await gated_session.wait()

        response = await client.get("/api/runs/current")
        body = response.json()

    assert body["state"] == "cancelled"
    assert body["running"] is False
    assert body["outcome"] == {"success": False, "message": "Cancelled"}
    assert "Starting processing 2 files..." in body["logs"]
    assert media.concat_calls == []


@pytest.mark.asyncio
async def test_stop_without_run(gated_session):
    async with api_client() as client:
        response = await client.post("/api/runs/stop")

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_invalid_config_rejected(gated_session):
    payload = dict(RUN_PAYLOAD, count_min=4, count_max=2)

    async with api_client() as client:
        response = await client.post("/api/runs", json=payload)

    assert response.status_code == 422
    assert gated_session.state == SessionState.IDLE


@pytest.mark.asyncio
async def test_persisting_reporter_records_run(tmp_path):
    engine, session_maker = await make_session_maker(tmp_path)
    reporter = PersistingReporter(session_maker=session_maker)
    config = RunConfig(**RUN_PAYLOAD)

    await reporter.started(config)
    assert reporter.run_id is not None
    await reporter.progress(100)
    await reporter.finished(RunOutcome(
        state=SessionState.COMPLETED,
        message="reel.mp4",
        output_path="reel.mp4",
        segments_total=6,
        segments_ok=5,
    ))

    async with session_maker() as db:
        record = await db.get(RunRecord, reporter.run_id)

    assert record.status == SessionState.COMPLETED
    assert record.progress == 100
    assert record.file_count == 2
    assert record.segments_ok == 5
    assert record.completed_at is not None
    await engine.dispose()


@pytest.mark.asyncio
async def test_list_runs(tmp_path):
    engine, session_maker = await make_session_maker(tmp_path)
    reporter = PersistingReporter(session_maker=session_maker)
    config = RunConfig(**RUN_PAYLOAD)
    for _ in range(2):
        await reporter.started(config)
        await reporter.finished(RunOutcome(state=SessionState.FAILED, message="Cancelled"))

    async def override_get_db():
        async with session_maker() as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with api_client() as client:
            response = await client.get("/api/runs")
    finally:
        app.dependency_overrides.clear()
        await engine.dispose()

    assert response.status_code == 200
    runs = response.json()
    assert [r["id"] for r in runs] == [2, 1]
    assert runs[0]["status"] == "failed"
    assert runs[0]["file_count"] == 2
