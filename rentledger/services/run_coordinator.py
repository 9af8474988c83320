"""
Single-flight guard for bill generation runs.

At most one run is in progress at a time. A second trigger while a run is
active is rejected immediately with ConcurrentRunRejected; nothing is queued.
The flag is released on every exit path of ``guard()``. ``reset_running_flag``
is the operator escape hatch for a flag left set by a crashed run. Each
acquire hands out a holder token and release only clears the flag for that
token, so a run that outlives a reset cannot clear its successor.

Flag backends:
- MemoryRunFlag: process-wide, guarded by a threading.Lock
- DatabaseRunFlag: one ``generation_locks`` row flipped with a conditional
  UPDATE, shared by every process using the same database
"""
import itertools
import logging
import os
import socket
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrentRunRejected, ValidationError
from ..extensions import db
from ..models import GenerationLock
from .bill_generation import GenerationStatistics
from .clock import SystemClock

logger = logging.getLogger(__name__)


@dataclass
class RunInfo:
    month: Optional[str] = None
    admin_id: Optional[int] = None
    started_at: Optional[object] = None
    token: Optional[str] = None


@dataclass
class GenerationReport:
    success: bool
    message: str
    statistics: Optional[GenerationStatistics] = None
    error: Optional[str] = None

    def to_dict(self):
        return {
            "success": self.success,
            "message": self.message,
            "data": self.statistics.to_dict() if self.statistics else None,
            "error": self.error,
        }


class MemoryRunFlag:
    """Process-wide flag; each acquire hands out a new holder token."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._holder = None

    def acquire(self, owner):
        with self._lock:
            if self._holder is not None:
                return None
            self._holder = f"{owner}#{next(self._tokens)}"
            return self._holder

    def release(self, token):
        """Clear the flag only if ``token`` still holds it."""
        with self._lock:
            if self._holder != token:
                return False
            self._holder = None
            return True

    def force_release(self):
        with self._lock:
            self._holder = None

    def is_set(self):
        with self._lock:
            return self._holder is not None


class DatabaseRunFlag:
    """Run flag stored in a single row so several processes share it.

    The holder token is written to ``owner``; release matches on it.
    """

    def __init__(self, name="monthly_bills", clock=None):
        self.name = name
        self.clock = clock or SystemClock()

    def acquire(self, owner):
        self._ensure_row()
        token = f"{owner}#{uuid.uuid4().hex[:12]}"
        result = db.session.execute(
            update(GenerationLock)
            .where(GenerationLock.name == self.name, GenerationLock.is_running.is_(False))
            .values(is_running=True, owner=token, acquired_at=self.clock.now())
        )
        db.session.commit()
        return token if result.rowcount == 1 else None

    def release(self, token):
        db.session.rollback()
        result = db.session.execute(
            update(GenerationLock)
            .where(GenerationLock.name == self.name, GenerationLock.owner == token)
            .values(is_running=False, owner=None, acquired_at=None)
        )
        db.session.commit()
        return result.rowcount == 1

    def force_release(self):
        db.session.rollback()
        db.session.execute(
            update(GenerationLock)
            .where(GenerationLock.name == self.name)
            .values(is_running=False, owner=None, acquired_at=None)
        )
        db.session.commit()

    def is_set(self):
        row = db.session.get(GenerationLock, self.name, populate_existing=True)
        return bool(row and row.is_running)

    def _ensure_row(self):
        if db.session.get(GenerationLock, self.name) is None:
            db.session.add(GenerationLock(name=self.name, is_running=False))
            try:
                db.session.commit()
            except IntegrityError:
                # Another process inserted it first.
                db.session.rollback()


class RunCoordinator:

    def __init__(self, flag=None, clock=None):
        self.flag = flag or MemoryRunFlag()
        self.clock = clock or SystemClock()
        self.current = RunInfo()
        self.last_run = None
        self.owner = f"{socket.gethostname()}:{os.getpid()}"

    def try_start(self, month=None, admin_id=None):
        """Take the run flag; returns the holder token, or None when busy."""
        token = self.flag.acquire(self.owner)
        if token is None:
            logger.warning("Bill generation already running; rejecting run for %s (admin=%s)",
                           month, admin_id)
            return None
        self.current = RunInfo(month=month, admin_id=admin_id, started_at=self.clock.now(), token=token)
        return token

    def finish(self, token):
        if not self.flag.release(token):
            logger.warning("Run %s finished after its flag was reset; current run left untouched", token)
            return False
        if self.current.token == token:
            self.current = RunInfo()
        return True

    def is_running(self):
        return self.flag.is_set()

    def get_status(self):
        running = self.is_running()
        return {
            "is_running": running,
            "status": "running" if running else "idle",
            "month": self.current.month,
            "admin_id": self.current.admin_id,
            "started_at": self.current.started_at.isoformat() if self.current.started_at else None,
        }

    def reset_running_flag(self):
        logger.warning("Bill generation flag reset manually (was running=%s, month=%s)",
                       self.is_running(), self.current.month)
        self.current = RunInfo()
        self.flag.force_release()

    @contextmanager
    def guard(self, month=None, admin_id=None):
        token = self.try_start(month, admin_id)
        if token is None:
            raise ConcurrentRunRejected()
        try:
            yield self
        finally:
            self.finish(token)

    def run_generation(self, engine, month=None, admin_id=None):
        """Run ``engine.generate`` under the guard and report the outcome.

        ConcurrentRunRejected and ValidationError reach the caller; any other
        error is logged and returned as a failed report.
        """
        month = engine.resolve_month(month)
        scope = f"admin {admin_id}" if admin_id is not None else "all admins"
        with self.guard(month, admin_id):
            try:
                stats = engine.generate(month, admin_id)
            except ValidationError:
                raise
            except Exception as e:
                logger.exception("Bill generation for %s (%s) failed", month, scope)
                db.session.rollback()
                return GenerationReport(
                    success=False,
                    message=f"Bill generation for {month} failed",
                    error=str(e),
                )
        self.last_run = stats.finished_at or self.clock.now()
        return GenerationReport(
            success=True,
            message=(f"Generated {stats.bills_generated} bills for {month} ({scope}); "
                     f"{stats.bills_skipped} skipped, {stats.errors} errors"),
            statistics=stats,
        )
