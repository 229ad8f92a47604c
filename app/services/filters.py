"""Transaction filtering shared by the list endpoint and CSV export.

Dates are calendar days and are compared as ``YYYY-MM-DD`` strings, which
sort the same way as the dates themselves and carry no timezone.
"""

import uuid
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel


class DateRangePreset(str, Enum):
    THIS_MONTH = "this-month"
    LAST_MONTH = "last-month"
    LAST_3_MONTHS = "last-3-months"
    LAST_6_MONTHS = "last-6-months"
    THIS_YEAR = "this-year"
    CUSTOM = "custom"


class TransactionType(str, Enum):
    ALL = "all"
    PERSONAL = "personal"
    JOINT = "joint"


# URL query keys
FILTER_PARAMS = {
    "search": "q",
    "date_range": "range",
    "start_date": "from",
    "end_date": "to",
    "category_id": "category",
    "type": "type",
    "amount_min": "min",
    "amount_max": "max",
}

_LABELS = {
    DateRangePreset.THIS_MONTH: "This Month",
    DateRangePreset.LAST_MONTH: "Last Month",
    DateRangePreset.LAST_3_MONTHS: "Last 3 Months",
    DateRangePreset.LAST_6_MONTHS: "Last 6 Months",
    DateRangePreset.THIS_YEAR: "This Year",
    DateRangePreset.CUSTOM: "Custom Range",
}


class FilterState(BaseModel):
    search: str = ""
    date_range: DateRangePreset = DateRangePreset.THIS_MONTH
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    type: TransactionType = TransactionType.ALL
    amount_min: Optional[float] = None
    amount_max: Optional[float] = None

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> "FilterState":
        """Build a filter from URL params; blank values fall back to defaults.

        The search text is kept verbatim, surrounding spaces included.
        """
        values = {}
        for field, key in FILTER_PARAMS.items():
            raw = params.get(key)
            if raw is None or raw == "":
                continue
            if field == "search":
                values[field] = str(raw)
            elif str(raw).strip():
                values[field] = str(raw).strip()
        return cls(**values)


def _months_back(day: date, months: int) -> date:
    """First day of the month ``months`` before the month of ``day``."""
    index = day.year * 12 + (day.month - 1) - months
    return date(index // 12, index % 12 + 1, 1)


def resolve_date_range(preset: DateRangePreset, today: date) -> Tuple[str, str]:
    """Resolve a preset to inclusive ``(start, end)`` date strings."""
    end = today
    if preset == DateRangePreset.THIS_MONTH:
        start = _months_back(today, 0)
    elif preset == DateRangePreset.LAST_MONTH:
        start = _months_back(today, 1)
        end = _months_back(today, 0) - timedelta(days=1)
    elif preset == DateRangePreset.LAST_3_MONTHS:
        start = _months_back(today, 2)
    elif preset == DateRangePreset.LAST_6_MONTHS:
        start = _months_back(today, 5)
    else:
        # this-year, and the fallback for custom without explicit bounds
        start = date(today.year, 1, 1)
    return start.isoformat(), end.isoformat()


def date_range_label(preset: Optional[DateRangePreset]) -> str:
    return _LABELS.get(preset, "All Time")


def date_bounds(filters: FilterState, today: date) -> Tuple[Optional[str], Optional[str]]:
    if filters.date_range == DateRangePreset.CUSTOM:
        # Unset custom bounds are open-ended
        return filters.start_date or None, filters.end_date or None
    return resolve_date_range(filters.date_range, today)


def _date_key(value) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def matches(txn, filters: FilterState, today: Optional[date] = None) -> bool:
    """True when ``txn`` satisfies every active condition of ``filters``."""
    if filters.search:
        needle = filters.search.lower()
        merchant = (getattr(txn, "merchant_name", None) or "").lower()
        description = (getattr(txn, "description", None) or "").lower()
        if needle not in merchant and needle not in description:
            return False

    start, end = date_bounds(filters, today or date.today())
    txn_date = _date_key(txn.date)
    if start is not None and txn_date < start:
        return False
    if end is not None and txn_date > end:
        return False

    if filters.category_id is not None and txn.category_id != filters.category_id:
        return False

    if filters.type == TransactionType.PERSONAL and txn.is_joint:
        return False
    if filters.type == TransactionType.JOINT and not txn.is_joint:
        return False

    amount = abs(txn.amount)
    if filters.amount_min is not None and amount < filters.amount_min:
        return False
    if filters.amount_max is not None and amount > filters.amount_max:
        return False

    return True


def filter_transactions(transactions: Iterable, filters: FilterState, today: Optional[date] = None) -> List:
    today = today or date.today()
    return [txn for txn in transactions if matches(txn, filters, today)]
