from __future__ import annotations

from datetime import datetime, timedelta

from app.errors import ValidationError


def add_business_days(start: datetime, days: int) -> datetime:
    """Return the date on which the ``days``-th weekday after ``start`` falls.

    Weekends are skipped; ``start`` itself is never counted. ``days == 0``
    returns ``start`` unchanged.
    """
    if isinstance(days, bool) or not isinstance(days, int):
        raise ValidationError(code="business_days_invalid", details=f"days must be an integer, got {days!r}")
    if days < 0:
        raise ValidationError(code="business_days_invalid", details="days must be >= 0")

    current = start
    counted = 0
    while counted < days:
        current = current + timedelta(days=1)
        if current.weekday() < 5:
            counted += 1
    return current
