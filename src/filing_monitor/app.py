"""FastAPI application exposing the on-demand trigger and running the schedules."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Sequence
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI, Query, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from .config import Settings, parse_categories
from .errors import ConfigurationError
from .logging_utils import configure_logging
from .models import FilingCategory
from .monitor import FilingMonitor
from .runner import build_monitor

LOGGER = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

STARTUP_JOB_ID = "startup-run"


def _scheduled_cycle(monitor: FilingMonitor, job_name: str, categories: Sequence[FilingCategory]) -> None:
    """Wrapper for running a monitoring cycle within the scheduler."""

    LOGGER.info("Running scheduled check %s", job_name)
    try:
        result = monitor.run_cycle(categories)
    except Exception:  # pragma: no cover - defensive logging
        LOGGER.exception("Scheduled check %s failed", job_name)
    else:
        LOGGER.info(
            "Scheduled check %s completed with %d change(s)", job_name, len(result.changes)
        )


def configure_jobs(scheduler: AsyncIOScheduler, monitor: FilingMonitor, settings: Settings) -> None:
    """Register one cron job per configured schedule."""

    tz = ZoneInfo(settings.timezone)
    for schedule in settings.schedules:
        trigger = CronTrigger.from_crontab(schedule.cron, timezone=tz)
        scheduler.add_job(
            _scheduled_cycle,
            trigger=trigger,
            args=[monitor, schedule.name, schedule.categories],
            id=schedule.name,
            replace_existing=True,
            coalesce=True,
        )
        LOGGER.info(
            "Scheduled %s (%s) for %s",
            schedule.name,
            schedule.cron,
            ", ".join(category.value for category in schedule.categories),
        )

    if settings.run_on_startup and settings.schedules:
        first = settings.schedules[0]
        scheduler.add_job(
            _scheduled_cycle,
            args=[monitor, STARTUP_JOB_ID, first.categories],
            id=STARTUP_JOB_ID,
            replace_existing=True,
        )


def create_app(settings: Settings | None = None, monitor: FilingMonitor | None = None) -> FastAPI:
    """Build the application; the monitor is created on first use when not given."""

    app = FastAPI(title="Filing Monitor")
    app.state.settings = settings
    app.state.monitor = monitor
    scheduler = AsyncIOScheduler()
    app.state.scheduler = scheduler

    def get_settings() -> Settings:
        if app.state.settings is None:
            app.state.settings = Settings.load()
        return app.state.settings

    def get_monitor() -> FilingMonitor:
        if app.state.monitor is None:
            app.state.monitor = build_monitor(get_settings())
        return app.state.monitor

    @app.on_event("startup")
    async def startup_event() -> None:
        LOGGER.info("Starting filing monitor application")
        configure_jobs(scheduler, get_monitor(), get_settings())
        if not scheduler.running:
            scheduler.start()
            LOGGER.info("Scheduler started")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        if app.state.monitor is not None:
            app.state.monitor.request_stop()
        if scheduler.running:
            scheduler.shutdown(wait=False)
            LOGGER.info("Scheduler shut down")

    @app.get("/run-scraper")
    def run_scraper(category: Optional[List[str]] = Query(default=None)) -> dict[str, Any]:
        LOGGER.info("Running filings check on demand")
        try:
            selected = parse_categories(",".join(category)) if category else None
            result = get_monitor().run_cycle(selected)
        except ConfigurationError as exc:
            LOGGER.warning("Rejected on-demand run: %s", exc)
            return {"status": "error", "message": str(exc), "changesFound": 0, "changes": []}
        except Exception as exc:  # pragma: no cover - defensive logging
            LOGGER.exception("On-demand run failed")
            return {"status": "error", "message": str(exc), "changesFound": 0, "changes": []}
        return result.to_summary()

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "running", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/", response_class=HTMLResponse)
    def dashboard(request: Request) -> HTMLResponse:
        LOGGER.debug("Rendering dashboard view")
        current = get_settings()
        store = get_monitor().store
        return templates.TemplateResponse(
            request,
            "dashboard.html",
            {
                "request": request,
                "entity_name": current.entity_name,
                "entity_cik": current.entity_cik,
                "categories": [category.value for category in current.all_categories],
                "changes": store.recent_changes(50),
                "entries": store.recent_entries(50),
            },
        )

    return app


configure_logging()

app = create_app()


__all__ = ["app", "configure_jobs", "create_app"]
