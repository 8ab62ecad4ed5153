"""Calendar and history views derived from the record cache."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from .models import ExpenseRecord


def has_record(records: Iterable[ExpenseRecord], day: date) -> bool:
    """True if at least one record falls on ``day`` (marks a calendar cell)."""
    return any(r.date == day for r in records)


def records_on(records: Iterable[ExpenseRecord], day: date) -> list[ExpenseRecord]:
    """All records on ``day``, in cache order."""
    return [r for r in records if r.date == day]


def total_on(records: Iterable[ExpenseRecord], day: date) -> int:
    return sum(r.amount for r in records if r.date == day)


def marked_days(records: Iterable[ExpenseRecord], year: int, month: int) -> set[date]:
    """Days of the given month that have at least one record."""
    return {r.date for r in records if r.date.year == year and r.date.month == month}
