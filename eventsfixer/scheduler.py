"""APScheduler integration."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from .config import settings
from .email import process_queued_emails
from .preview import purge_expired_preview_tokens
from .reminders import queue_event_reminders, queue_no_response_reminders

logger = logging.getLogger("uvicorn.error")

_scheduler: BackgroundScheduler | None = None


def start_scheduler() -> BackgroundScheduler | None:
    global _scheduler
    if not settings.enable_scheduler:
        logger.info("Background scheduler disabled")
        return None
    if _scheduler and _scheduler.running:
        return _scheduler
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        process_queued_emails,
        "interval",
        minutes=settings.email_interval_minutes,
        id="email-outbox",
        max_instances=1,
        replace_existing=True,
    )
    scheduler.add_job(
        queue_event_reminders,
        "cron",
        hour=settings.reminder_hour_utc,
        id="event-reminders",
        max_instances=1,
        replace_existing=True,
    )
    scheduler.add_job(
        queue_no_response_reminders,
        "cron",
        hour=settings.reminder_hour_utc,
        minute=30,
        id="no-response-reminders",
        max_instances=1,
        replace_existing=True,
    )
    scheduler.add_job(
        purge_expired_preview_tokens,
        "interval",
        hours=1,
        id="preview-token-purge",
        max_instances=1,
        replace_existing=True,
    )
    scheduler.start()
    _scheduler = scheduler
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        _scheduler = None
