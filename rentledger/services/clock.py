from datetime import datetime, timedelta, timezone


class SystemClock:
    def now(self):
        """Current time as a naive UTC datetime, like the stored columns."""
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def today(self):
        return self.now().date()


class FixedClock(SystemClock):
    """Clock pinned to a given instant; used by tests and backfills."""

    def __init__(self, current):
        self.current = current

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)
        return self.current
