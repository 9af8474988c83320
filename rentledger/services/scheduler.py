"""
Monthly bill scheduler.

A background thread ticks on start and then every
BILL_SCHEDULER_INTERVAL_SECONDS. Each tick compares the current month with
the last month it handled, so a tick missed while the process was down is
picked up by the first tick after restart. Whether a month is already billed
is decided by the bills themselves (see BillGenerationService
.get_generation_stats), not by a persisted "last run" marker.
"""
import logging
import threading

from ..errors import ConcurrentRunRejected
from ..utils.months import month_token, next_run_after, release_time
from .bill_generation import BillGenerationService

logger = logging.getLogger(__name__)


class BillScheduler:

    def __init__(self, coordinator, clock, run_hour=9, interval=3600, engine_factory=None):
        self.coordinator = coordinator
        self.clock = clock
        self.run_hour = run_hour
        self.interval = interval
        self.engine_factory = engine_factory or (lambda: BillGenerationService.from_app(clock=self.clock))
        self.last_handled_month = None
        self._stop = threading.Event()
        self._thread = None

    @property
    def is_enabled(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self, app):
        if self.is_enabled:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, args=(app,), name="bill-scheduler", daemon=True
        )
        self._thread.start()
        app.logger.info("Bill scheduler started (every %ss, release %02d:00 UTC on the 1st)",
                        self.interval, self.run_hour)

    def stop(self, timeout=5):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def _loop(self, app):
        while not self._stop.is_set():
            with app.app_context():
                try:
                    self.tick()
                except Exception:
                    logger.exception("Bill scheduler tick failed")
            self._stop.wait(self.interval)

    def tick(self):
        """Generate the current month's bills if they are due and not yet done.

        Returns the GenerationReport of a run, or None when nothing ran.
        """
        now = self.clock.now()
        month = month_token(now)
        if month == self.last_handled_month:
            return None
        if now < release_time(month, self.run_hour):
            logger.debug("Bills for %s not released until %02d:00 UTC", month, self.run_hour)
            return None

        engine = self.engine_factory()
        stats = engine.get_generation_stats(month)
        if stats["missing_bills"] == 0:
            logger.info("Bills for %s already generated (%d existing); nothing to do",
                        month, stats["existing_bills"])
            self.last_handled_month = month
            return None

        logger.info("Scheduled bill generation for %s: %d tenants without a bill",
                    month, stats["missing_bills"])
        try:
            report = self.coordinator.run_generation(engine, month)
        except ConcurrentRunRejected:
            logger.info("Scheduled run for %s skipped: a run is already in progress", month)
            return None

        if report.success and report.statistics.errors == 0:
            self.last_handled_month = month
        elif report.success:
            logger.warning("Bills for %s generated with %d errors; retrying next tick",
                           month, report.statistics.errors)
        else:
            logger.error("Scheduled bill generation for %s failed: %s", month, report.error)
        return report

    def trigger_generation(self, month=None, admin_id=None):
        """Manual run, any date, all admins or one; same single-flight guard."""
        engine = self.engine_factory()
        return self.coordinator.run_generation(engine, month, admin_id)

    def get_status(self):
        status = self.coordinator.get_status()
        last_run = self.coordinator.last_run
        status.update({
            "is_enabled": self.is_enabled,
            "next_run": next_run_after(self.clock.now(), self.run_hour).isoformat() + "Z",
            "last_run": last_run.isoformat() + "Z" if last_run else None,
            "last_handled_month": self.last_handled_month,
        })
        return status
