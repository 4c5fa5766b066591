from __future__ import annotations

from dataclasses import replace

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi.testclient import TestClient

from conftest import FakeSession, RecordingNotifier
from filing_monitor.app import STARTUP_JOB_ID, configure_jobs, create_app
from filing_monitor.config import DEFAULT_SCHEDULES
from filing_monitor.history import MemoryHistoryStore
from filing_monitor.monitor import FilingMonitor


@pytest.fixture
def monitor(settings, thirteen_f_routes, make_fetcher):
    return FilingMonitor(
        settings=settings,
        fetcher=make_fetcher(FakeSession(thirteen_f_routes)),
        store=MemoryHistoryStore(),
        notifier=RecordingNotifier(),
    )


@pytest.fixture
def client(settings, monitor):
    # Used without a context manager so the scheduler is never started.
    return TestClient(create_app(settings=settings, monitor=monitor))


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "running"
    assert "timestamp" in body


def test_run_scraper_returns_cycle_summary(client):
    response = client.get("/run-scraper", params={"category": "13F-HR"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    # Both listed quarters are new to an empty history.
    assert body["changesFound"] == len(body["changes"]) == 5
    assert [change["classification"] for change in body["changes"]][-3:] == ["Increased", "New", "Exited"]
    assert [filing["published_date"] for filing in body["newFilings"]] == ["2023-11-14", "2024-02-14"]


def test_run_scraper_rejects_unknown_category(client):
    response = client.get("/run-scraper", params={"category": "S-1"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "error"
    assert "S-1" in body["message"]
    assert body["changesFound"] == 0


def test_dashboard_lists_recorded_filings(client):
    client.get("/run-scraper", params={"category": "13F-HR"})

    response = client.get("/")

    assert response.status_code == 200
    assert "NVIDIA filing monitor" in response.text
    assert "SOUNDHOUND AI INC" in response.text
    assert "0001045810-24-000003-index.htm" in response.text


def test_configure_jobs_registers_every_schedule(settings, monitor):
    scheduler = AsyncIOScheduler()

    configure_jobs(scheduler, monitor, replace(settings, schedules=DEFAULT_SCHEDULES, run_on_startup=True))

    job_ids = {job.id for job in scheduler.get_jobs()}
    assert job_ids == {schedule.name for schedule in DEFAULT_SCHEDULES} | {STARTUP_JOB_ID}
