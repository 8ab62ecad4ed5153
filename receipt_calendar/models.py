"""Data models for expense records, the draft form and the calendar selection."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Union


class Category(str, Enum):
    """Closed set of expense categories.

    Values are the labels stored in the ``expenses`` table and emitted by the
    extraction prompt.
    """

    FOOD = "食費"
    DAILY_GOODS = "日用品"
    TRANSPORT = "交通費"
    SOCIAL = "交際費"
    OTHER = "その他"

    @property
    def label_en(self) -> str:
        return _ENGLISH_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> Category | None:
        """Match a Japanese label or English name; None if nothing matches."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        text = value.strip()
        for category in cls:
            if text == category.value:
                return category
        key = " ".join(text.replace("_", " ").split()).lower()
        for category, english in _ENGLISH_LABELS.items():
            if key == english.lower():
                return category
        return None


_ENGLISH_LABELS: dict[Category, str] = {
    Category.FOOD: "Food",
    Category.DAILY_GOODS: "Daily Goods",
    Category.TRANSPORT: "Transport",
    Category.SOCIAL: "Social",
    Category.OTHER: "Other",
}

DEFAULT_CATEGORY = Category.FOOD


@dataclass(frozen=True)
class ExpenseRecord:
    """A persisted expense row. Immutable; only deletion ends its lifetime."""

    id: str
    owner_id: str
    date: date
    amount: int  # 円
    shop_name: str = ""
    category: Category = DEFAULT_CATEGORY
    created_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> ExpenseRecord:
        """Build a record from an ``expenses`` row.

        Raises:
            ValueError: If the row violates the record invariants.
        """
        day = parse_day(row.get("date"))
        if day is None:
            raise ValueError(f"不正な日付です: {row.get('date')!r}")
        amount = row.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"不正な金額です: {amount!r}")
        category = Category.parse(row.get("category"))
        if category is None:
            raise ValueError(f"不明なカテゴリ: {row.get('category')!r}")
        return cls(
            id=str(row["id"]),
            owner_id=str(row.get("user_id", "")),
            date=day,
            amount=amount,
            shop_name=row.get("shop_name") or "",
            category=category,
            created_at=str(row.get("created_at") or ""),
        )


@dataclass
class DraftForm:
    """Staging area for a not-yet-saved expense. ``amount=None`` means unset."""

    amount: int | None = None
    shop_name: str = ""
    category: Category = DEFAULT_CATEGORY

    @classmethod
    def empty(cls) -> DraftForm:
        return cls()

    def is_empty(self) -> bool:
        return self == DraftForm()


@dataclass(frozen=True)
class SingleDate:
    day: date

    def effective_date(self) -> date:
        return self.day


@dataclass(frozen=True)
class DateRange:
    """A range picked on the calendar. Only ``start`` is used for save/filter."""

    start: date
    end: date

    def effective_date(self) -> date:
        return self.start


SelectedDate = Union[SingleDate, DateRange]


@dataclass
class ExtractionResult:
    """Coerced extraction reply: a full draft plus the receipt date, if any."""

    draft: DraftForm = field(default_factory=DraftForm)
    date: date | None = None


def parse_day(value: Any) -> date | None:
    """Parse ``YYYY-MM-DD`` (also ``YYYY/MM/DD`` or an ISO datetime prefix)."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip().replace("/", "-")
    if "T" in text:
        text = text.split("T", 1)[0]
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None
