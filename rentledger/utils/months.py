import re
from datetime import date, datetime

from dateutil.relativedelta import relativedelta

from ..errors import ValidationError

MONTH_RE = re.compile(r"([0-9]{4})-(0[1-9]|1[0-2])")


def parse_month(token):
    """Return the first day of a ``YYYY-MM`` month token."""
    match = MONTH_RE.fullmatch(token) if isinstance(token, str) else None
    if match is None:
        raise ValidationError("Invalid month format. Use YYYY-MM", month=token)
    return date(int(match.group(1)), int(match.group(2)), 1)


def month_token(value):
    """``YYYY-MM`` for a date or datetime."""
    return value.strftime("%Y-%m")


def month_end(token):
    """Last calendar day of the month."""
    return parse_month(token) + relativedelta(months=1, days=-1)


def due_date_for(token, months_after=1, day=1):
    return parse_month(token) + relativedelta(months=months_after, day=day)


def release_time(token, hour):
    """Instant (naive UTC) from which the month's bills may be generated."""
    start = parse_month(token)
    return datetime(start.year, start.month, 1, hour)


def next_run_after(now, hour):
    """The 1st of the calendar month following ``now``, at ``hour`` UTC."""
    first = (now.replace(day=1) + relativedelta(months=1)).date()
    return datetime(first.year, first.month, 1, hour)


def normalize_month(token):
    """Validated, canonical ``YYYY-MM`` form of ``token``."""
    return month_token(parse_month(token))
