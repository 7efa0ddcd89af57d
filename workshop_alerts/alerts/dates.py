"""
Работа с датами для evaluators.

Разница считается в полных сутках с усечением к нулю. Непарсящаяся
или пустая дата → None ("нет сигнала"), запись исключается вызывающим.
"""

from datetime import date, datetime

SECONDS_PER_DAY = 86400


def parse_date(value: str | date | None) -> datetime | None:
    """Разбирает ISO дату/datetime. Aware → локальное naive время."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _whole_days(later: datetime, earlier: datetime) -> int:
    return int((later - earlier).total_seconds() / SECONDS_PER_DAY)


def days_since(value: str | date | None, now: datetime) -> int | None:
    """Сколько полных дней прошло с даты (не меньше 0)."""
    parsed = parse_date(value)
    if parsed is None:
        return None
    return max(0, _whole_days(now, parsed))


def days_until(value: str | date | None, now: datetime) -> int | None:
    """Сколько полных дней до даты (отрицательное, если уже прошла)."""
    parsed = parse_date(value)
    if parsed is None:
        return None
    return _whole_days(parsed, now)


def is_past(value: str | date | None, now: datetime) -> bool:
    """Дата строго в прошлом. Непарсящаяся → False."""
    parsed = parse_date(value)
    return parsed is not None and parsed < now


def plural(count: int, singular: str, plural_form: str | None = None) -> str:
    """Испанское окончание: 1 día / 3 días."""
    if count == 1:
        return singular
    return plural_form if plural_form is not None else f"{singular}s"
