"""
Manpower Forecast Platform
Scheduler Service.

A lightweight, thread-based scheduler for the reminder jobs.

Architecture:
    - ReminderScheduler: one instance per app, owns its job registry
      (no module-level state), created by the app factory and started
      by the process entry point (wsgi.py)
    - Jobs are stored in ScheduledJob rows for persistence and run history
    - Manual trigger API for development and testing
    - A job failure is logged and recorded, never propagated

Schedules are wall-clock slots: ``{"hours": [9, 15], "minute": 0,
"day_of_week": None}`` (``day_of_week`` 0 = Monday). Each slot fires at
most once per day; ``run_due_jobs(now)`` is what the background thread
calls on every poll, and what tests call with a fixed ``now``.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from flask import Flask

from manpower.core.clock import SystemClock
from manpower.core.exceptions import NotFoundError
from manpower.models import db
from manpower.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


@dataclass
class RegisteredJob:
    name: str
    fn: Callable
    schedule: dict
    description: str = ""
    last_slot: tuple | None = field(default=None, repr=False)

    def slot_for(self, local_now: datetime) -> tuple | None:
        """The (date, hour) slot ``local_now`` falls in, if the job is due."""
        day_of_week = self.schedule.get("day_of_week")
        if day_of_week is not None and local_now.weekday() != day_of_week:
            return None
        if local_now.hour not in self.schedule.get("hours", ()):
            return None
        if local_now.minute < self.schedule.get("minute", 0):
            return None
        return (local_now.date(), local_now.hour)


def describe_schedule(schedule: dict) -> str:
    hours = ", ".join(f"{h:02d}:{schedule.get('minute', 0):02d}" for h in schedule.get("hours", ()))
    day = schedule.get("day_of_week")
    if day is None:
        return f"Daily at {hours}"
    return f"{('Mondays', 'Tuesdays', 'Wednesdays', 'Thursdays', 'Fridays', 'Saturdays', 'Sundays')[day]} at {hours}"


class ReminderScheduler:
    """
    Scheduler context object.

    Manages job registration, persistence, and execution.
    Jobs are executed within Flask app context as ``fn(app, now)``.
    """

    def __init__(self, app: Flask | None = None, clock=None,
                 poll_seconds: int = 60, timezone_name: str = "UTC"):
        self.clock = clock or SystemClock()
        self.poll_seconds = poll_seconds
        self.tz = ZoneInfo(timezone_name)
        self._app: Flask | None = None
        self._jobs: dict[str, RegisteredJob] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Bind to the app and publish as ``app.extensions["reminder_scheduler"]``."""
        self._app = app
        app.extensions["reminder_scheduler"] = self

    # ── Registry ─────────────────────────────────────────────────────────

    def register(self, name: str, fn: Callable, schedule: dict, description: str = "") -> None:
        if not description and fn.__doc__:
            description = fn.__doc__.strip().splitlines()[0]
        self._jobs[name] = RegisteredJob(name, fn, schedule, description or f"Scheduled job: {name}")

    @property
    def jobs(self) -> dict[str, RegisteredJob]:
        return dict(self._jobs)

    def ensure_jobs_registered(self) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with their schedule config.
        """
        created = []
        for name, job in self._jobs.items():
            existing = ScheduledJob.query.filter_by(job_name=name).first()
            if not existing:
                record = ScheduledJob(
                    job_name=name,
                    description=job.description,
                    schedule_config={**job.schedule, "description": describe_schedule(job.schedule)},
                    status="active",
                    is_enabled=True,
                )
                db.session.add(record)
                created.append(record)
        if created:
            db.session.commit()
            logger.info("Created %d scheduled job records", len(created))
        return created

    # ── Lifecycle ────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the polling thread (idempotent)."""
        if self._app is None:
            raise RuntimeError("ReminderScheduler.start() called before init_app()")
        if self.is_running:
            return
        with self._app.app_context():
            self.ensure_jobs_registered()
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="reminder-scheduler", daemon=True)
        self._thread.start()
        logger.info("Reminder scheduler started: %d jobs, poll every %ss",
                    len(self._jobs), self.poll_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Reminder scheduler stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_due_jobs()
            except Exception:
                logger.exception("Scheduler poll failed")
            self._stop.wait(self.poll_seconds)

    # ── Execution ────────────────────────────────────────────────────────

    def run_due_jobs(self, now: datetime | None = None) -> list[dict]:
        """Run every enabled job whose slot is due and not yet run."""
        now = now or self.clock.now()
        local_now = now.astimezone(self.tz) if now.tzinfo else now
        results = []
        with self._lock:
            for job in self._jobs.values():
                slot = job.slot_for(local_now)
                if slot is None or slot == job.last_slot:
                    continue
                if not self._is_enabled(job.name):
                    continue
                job.last_slot = slot
                results.append(self.run_job(job.name, now=now))
        return results

    def _is_enabled(self, job_name: str) -> bool:
        with self._app.app_context():
            record = ScheduledJob.query.filter_by(job_name=job_name).first()
            return record is None or bool(record.is_enabled)

    def run_job(self, job_name: str, now: datetime | None = None) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.

        Raises:
            NotFoundError: unknown job name.
        """
        job = self._jobs.get(job_name)
        if job is None:
            raise NotFoundError("ScheduledJob", job_name)

        now = now or self.clock.now()
        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with self._app.app_context():
                result = job.fn(self._app, now)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc)

        duration_ms = int((time.monotonic() - start) * 1000)

        try:
            with self._app.app_context():
                record = ScheduledJob.query.filter_by(job_name=job_name).first()
                if record:
                    record.record_run(
                        status=status,
                        duration_ms=duration_ms,
                        result=result if isinstance(result, dict) else {"output": str(result)},
                        error=error,
                        at=now,
                    )
                    db.session.commit()
        except Exception:
            logger.exception("Failed to update job record for %s", job_name)

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    # ── Introspection ────────────────────────────────────────────────────

    def status(self) -> dict:
        """Running flag plus every registered job with its DB record."""
        jobs = []
        for name, job in self._jobs.items():
            record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "schedule": describe_schedule(job.schedule),
                "db_record": record.to_dict() if record else None,
            })
        return {
            "running": self.is_running,
            "poll_seconds": self.poll_seconds,
            "timezone": str(self.tz),
            "jobs": jobs,
        }

    def toggle_job(self, job_name: str, enabled: bool) -> dict:
        """Enable or disable a scheduled job."""
        if job_name not in self._jobs:
            raise NotFoundError("ScheduledJob", job_name)
        record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if record is None:
            self.ensure_jobs_registered()
            record = ScheduledJob.query.filter_by(job_name=job_name).first()
        record.is_enabled = enabled
        record.status = "active" if enabled else "paused"
        db.session.commit()
        return record.to_dict()
