from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Some drivers (sqlite) hand back naive datetimes; they are stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def time_msec(value: datetime) -> int:
    value = as_utc(value)
    return int(value.timestamp()) * 1000 + value.microsecond // 1000
