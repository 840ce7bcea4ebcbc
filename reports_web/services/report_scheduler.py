from __future__ import annotations

import calendar
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from reports_web.domain.models import Report
from reports_web.ports.stores import ReportStore
from reports_web.services.run_service import ReportRunService

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_slot(report: Report, now: datetime) -> Optional[datetime]:
    """
    The scheduled slot for the current day/week/month, schedule time read as UTC.
    None when the schedule is off or incomplete.
    """
    if not report.schedule_enabled or report.schedule_time is None:
        return None

    now = _as_utc(now)
    kind = (report.schedule_type or "none").lower()
    today = now.date()
    at = report.schedule_time

    if kind == "daily":
        day = today
    elif kind == "weekly":
        if report.schedule_day_of_week is None:
            return None
        # week starts on Sunday; date.weekday() has Monday=0
        start_of_week = today - timedelta(days=(today.weekday() + 1) % 7)
        day = start_of_week + timedelta(days=report.schedule_day_of_week)
    elif kind == "monthly":
        if report.schedule_day_of_month is None:
            return None
        days_in_month = calendar.monthrange(today.year, today.month)[1]
        day = today.replace(day=min(max(report.schedule_day_of_month, 1), days_in_month))
    else:
        return None

    return datetime(day.year, day.month, day.day, at.hour, at.minute, at.second, tzinfo=timezone.utc)


def is_due(report: Report, now: datetime) -> bool:
    slot = next_slot(report, now)
    if slot is None:
        return False
    if _as_utc(now) < slot:
        return False
    return report.last_run is None or _as_utc(report.last_run) < slot


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScheduledReportRunner:
    """
    Background loop that runs every schedulable report whose slot has passed.
    stop() also cancels a run that is in flight.
    """
    report_store: ReportStore
    run_service: ReportRunService
    interval_seconds: float = 60.0
    clock: Callable[[], datetime] = _utcnow
    _stop_event: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _thread: Optional[threading.Thread] = field(default=None, init=False, repr=False)

    def tick(self) -> int:
        now = self.clock()
        started = 0
        for report in self.report_store.list_schedulable():
            if self._stop_event.is_set():
                break
            if not is_due(report, now):
                continue
            self.run_service.run_report(report.workspace_id, report.id, self._stop_event)
            started += 1
        return started

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Scheduled report runner already started")
            return

        self._stop_event.clear()

        def _loop() -> None:
            logger.info("Scheduled report runner started (interval=%ss)", self.interval_seconds)
            while not self._stop_event.wait(self.interval_seconds):
                try:
                    count = self.tick()
                    if count:
                        logger.info("Scheduled report runner started %d run(s)", count)
                except Exception:
                    logger.exception("Error running scheduled reports")
            logger.info("Scheduled report runner stopped")

        self._thread = threading.Thread(target=_loop, daemon=True, name="report-scheduler")
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Scheduled report runner did not stop cleanly")
        self._thread = None
