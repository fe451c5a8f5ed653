# achievement_api/utils/dates.py
from datetime import date, datetime, timezone
from typing import List, Optional


def utcnow() -> datetime:
    """Naive UTC timestamp; both stores round-trip naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_date(value: Optional[str], field: str = "date") -> Optional[date]:
    """Parse a strict YYYY-MM-DD string. Empty values pass through as None."""
    if value is None or value == "":
        return None
    if not isinstance(value, str) or len(value) != 10:
        raise ValueError(f"{field} must be in YYYY-MM-DD format")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValueError(f"{field} must be in YYYY-MM-DD format") from exc


def month_key(moment: datetime) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def last_months(count: int = 12, now: Optional[datetime] = None) -> List[str]:
    """Year-month keys for the last ``count`` months, oldest first, ending with the current month."""
    now = now or utcnow()
    year, month = now.year, now.month
    keys = []
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    keys.reverse()
    return keys


def month_start(key: str) -> datetime:
    year, month = key.split("-")
    return datetime(int(year), int(month), 1)
