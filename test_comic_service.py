"""
Comic Service — Test Suite.

Request ledger, eviction scheduler, settings, background service and the
Flask API. No API keys needed: the pipeline stages are stubbed.

Usage:
    pytest test_comic_service.py
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent))

from comic_strip.comic_generator import ComicPipeline
from comic_strip.config import load_settings
from comic_strip.ledger import RequestLedger
from comic_strip.models import (
    ComicBrief,
    ComicImagePanel,
    ComicResult,
    RequestStatus,
    StageResult,
)
from comic_strip.scheduler import SWEEP_JOB_ID, EvictionScheduler
from comic_strip.server import create_app
from comic_strip.service import ComicService

VALID_BODY = {
    "character1Description": "A brave knight",
    "character2Description": "A wise wizard",
    "artStyle": "anime manga style",
    "theme": "medieval adventure",
}

STORY_REPLY = (
    '{"title": "Quest", "panels": ['
    '{"panelNumber": 1, "dialogueText": "Onward!", "visualDescription": "Knight rides"},'
    '{"panelNumber": 2, "dialogueText": "", "visualDescription": "Wizard reads"},'
    '{"panelNumber": 3, "dialogueText": "Look!", "visualDescription": "Dragon appears"},'
    '{"panelNumber": 4, "dialogueText": "Victory", "visualDescription": "They celebrate"}]}'
)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class StubText:
    def __init__(self, reply=STORY_REPLY, fatal=""):
        self.reply = reply
        self.fatal = fatal

    async def process(self, messages):
        if self.fatal:
            return StageResult.fatal(self.fatal)
        return StageResult.success(self.reply)


class StubImages:
    """Image stage that 'draws' every panel except the listed ones."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.closed = False

    async def process(self, story):
        panels = [
            ComicImagePanel.from_panel(
                p, "" if p.panel_number in self.failing else f"https://img/{p.panel_number}.png"
            )
            for p in story.panels
        ]
        return StageResult.success(ComicResult(story.title, story.art_style, panels))

    async def close(self):
        self.closed = True


def make_service(text=None, images=None, ledger=None) -> ComicService:
    pipeline = ComicPipeline(text_generator=text or StubText(), image_generator=images or StubImages())
    return ComicService(pipeline=pipeline, ledger=ledger)


@pytest.fixture
def service():
    svc = make_service()
    svc.start()
    yield svc
    svc.close()


# ============================================================
# Test 1: Request ledger
# ============================================================

def test_ledger_create_and_get():
    ledger = RequestLedger()
    request = ledger.create(ComicBrief.from_payload(VALID_BODY))

    assert request.status is RequestStatus.PENDING
    assert ledger.get(request.request_id) is request
    assert request.request_id in ledger
    assert ledger.get("nope") is None
    assert len(ledger) == 1


def test_ledger_recent_newest_first():
    clock = FakeClock(datetime(2026, 3, 1, 12, 0))
    ledger = RequestLedger(clock=clock)
    brief = ComicBrief.from_payload(VALID_BODY)

    ids = []
    for _ in range(12):
        ids.append(ledger.create(brief).request_id)
        clock.advance(minutes=1)

    recent = ledger.list_recent(10)
    assert len(recent) == 10
    assert [r.request_id for r in recent] == list(reversed(ids))[:10]


def test_ledger_eviction_window():
    clock = FakeClock(datetime(2026, 3, 1, 12, 0))
    ledger = RequestLedger(retention_hours=2, clock=clock)
    request = ledger.create(ComicBrief.from_payload(VALID_BODY))

    clock.advance(hours=1, minutes=59)
    assert ledger.sweep() == 0
    assert ledger.get(request.request_id) is request

    clock.advance(minutes=2)
    assert ledger.sweep() == 1
    assert ledger.get(request.request_id) is None


def test_ledger_eviction_ignores_status():
    clock = FakeClock(datetime(2026, 3, 1, 12, 0))
    ledger = RequestLedger(retention_hours=2, clock=clock)
    brief = ComicBrief.from_payload(VALID_BODY)

    old_running = ledger.create(brief)
    old_running.advance(RequestStatus.GENERATING_STORY)
    clock.advance(hours=3)
    fresh = ledger.create(brief)

    assert ledger.sweep() == 1
    assert old_running.request_id not in ledger
    assert fresh.request_id in ledger


# ============================================================
# Test 2: Eviction scheduler
# ============================================================

def test_eviction_job_registered():
    ledger = RequestLedger()
    eviction = EvictionScheduler(ledger, interval_hours=2)

    job = eviction.scheduler.get_job(SWEEP_JOB_ID)
    assert job is not None
    assert job.trigger.interval == timedelta(hours=2)


def test_eviction_job_sweeps_ledger():
    clock = FakeClock(datetime(2026, 3, 1, 12, 0))
    ledger = RequestLedger(clock=clock)
    ledger.create(ComicBrief.from_payload(VALID_BODY))
    clock.advance(hours=5)

    eviction = EvictionScheduler(ledger)
    assert eviction._sweep() == 1
    assert len(ledger) == 0


# ============================================================
# Test 3: Settings
# ============================================================

def test_settings_yaml_and_env(tmp_path, monkeypatch):
    config = tmp_path / "comic.yaml"
    config.write_text("image_max_attempts: 5\nretention_hours: 1\nport: 8080\nbogus: 1\n")
    monkeypatch.setenv("MINIMAX_API_KEY", "mm-key")
    monkeypatch.setenv("PORT", "9090")
    monkeypatch.delenv("COMIC_TEXT_MODEL", raising=False)

    settings = load_settings(str(config))

    assert settings.image_max_attempts == 5
    assert settings.retention_hours == 1.0
    assert settings.minimax_api_key == "mm-key"
    assert settings.port == 9090  # env wins over YAML
    assert settings.image_width == 512


def test_settings_missing_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    settings = load_settings(str(tmp_path / "absent.yaml"))
    assert settings.image_timeout == 120.0
    assert settings.port == 3003


def test_service_from_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("MINIMAX_API_KEY", "mm-key")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "an-key")
    config = tmp_path / "comic.yaml"
    config.write_text("retention_hours: 1\n")
    settings = load_settings(str(config))

    svc = ComicService.from_settings(settings)
    assert svc.pipeline.image_generator.api_key == "mm-key"
    assert svc.pipeline.image_generator.max_attempts == 3
    assert svc.ledger.retention == timedelta(hours=1)


# ============================================================
# Test 4: Background service
# ============================================================

def test_service_runs_request_to_completion(service):
    request = service.submit(VALID_BODY)
    assert request.request_id in service.ledger

    done = service.wait(request.request_id, timeout=5)
    assert done.history == [
        RequestStatus.PENDING,
        RequestStatus.GENERATING_STORY,
        RequestStatus.GENERATING_IMAGES,
        RequestStatus.COMPLETED,
    ]
    assert [p.panel_number for p in done.result.panels] == [1, 2, 3, 4]


def test_service_records_errors():
    svc = make_service(text=StubText(fatal="quota exceeded"))
    svc.start()
    try:
        request = svc.submit(VALID_BODY)
        done = svc.wait(request.request_id, timeout=5)
    finally:
        svc.close()

    assert done.status is RequestStatus.ERROR
    assert done.error == "quota exceeded"


def test_service_close_closes_stages():
    images = StubImages()
    svc = make_service(images=images)
    svc.start()
    svc.close()
    assert images.closed
    assert not svc.running


# ============================================================
# Test 5: HTTP API
# ============================================================

def test_generate_and_poll(service):
    client = create_app(service).test_client()

    response = client.post("/api/generate-comic", json=VALID_BODY)
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "pending"
    assert body["message"] == "Comic generation started"

    service.wait(body["requestId"], timeout=5)

    status = client.get(f"/api/comic-status/{body['requestId']}").get_json()
    assert status["status"] == "completed"
    assert status["artStyle"] == "anime manga style"
    assert status["theme"] == "medieval adventure"
    assert len(status["result"]["panels"]) == 4
    assert status["result"]["panels"][1]["imageUrl"] == "https://img/2.png"
    assert "error" not in status


def test_partial_failure_is_completed():
    svc = make_service(images=StubImages(failing={2, 4}))
    svc.start()
    try:
        client = create_app(svc).test_client()
        request_id = client.post("/api/generate-comic", json=VALID_BODY).get_json()["requestId"]
        svc.wait(request_id, timeout=5)
        status = client.get(f"/api/comic-status/{request_id}").get_json()
    finally:
        svc.close()

    assert status["status"] == "completed"
    assert [p["imageUrl"] for p in status["result"]["panels"]] == [
        "https://img/1.png", "", "https://img/3.png", "",
    ]


def test_error_status_carries_message():
    svc = make_service(text=StubText(fatal="LLM timeout"))
    svc.start()
    try:
        client = create_app(svc).test_client()
        request_id = client.post("/api/generate-comic", json=VALID_BODY).get_json()["requestId"]
        svc.wait(request_id, timeout=5)
        status = client.get(f"/api/comic-status/{request_id}").get_json()
    finally:
        svc.close()

    assert status["status"] == "error"
    assert status["error"] == "LLM timeout"
    assert "result" not in status


@pytest.mark.parametrize("field", ["character1Description", "character2Description", "artStyle"])
def test_generate_rejects_invalid_brief(service, field):
    client = create_app(service).test_client()
    body = dict(VALID_BODY, **{field: "   "})

    response = client.post("/api/generate-comic", json=body)
    assert response.status_code == 400
    assert "required" in response.get_json()["error"]
    assert len(service.ledger) == 0


def test_generate_without_json_body(service):
    client = create_app(service).test_client()
    response = client.post("/api/generate-comic", data="not json")
    assert response.status_code == 400


def test_generate_before_start_is_server_error():
    svc = make_service()
    client = create_app(svc).test_client()

    response = client.post("/api/generate-comic", json=VALID_BODY)
    assert response.status_code == 500
    assert response.get_json()["error"] == "Comic generator is not initialized"
    assert len(svc.ledger) == 0


def test_unknown_request_is_not_found(service):
    client = create_app(service).test_client()
    response = client.get("/api/comic-status/does-not-exist")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Request not found"}


def test_recent_comics_listing(service):
    client = create_app(service).test_client()
    long_body = dict(VALID_BODY, character1Description="K" * 80)

    first = client.post("/api/generate-comic", json=VALID_BODY).get_json()["requestId"]
    second = client.post("/api/generate-comic", json=long_body).get_json()["requestId"]
    service.wait(first, timeout=5)
    service.wait(second, timeout=5)

    recent = client.get("/api/recent-comics").get_json()
    assert len(recent) == 2
    by_id = {r["requestId"]: r for r in recent}
    assert by_id[second]["character1Description"] == "K" * 50 + "..."
    assert by_id[first]["character1Description"] == "A brave knight"
    assert all(r["hasResult"] for r in recent)


def test_health(service):
    client = create_app(service).test_client()
    assert client.get("/api/health").get_json() == {"status": "ok", "trackedRequests": 0}
