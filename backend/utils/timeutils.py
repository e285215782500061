from datetime import datetime, timezone


def utcnow() -> datetime:
    # naive UTC; SQLite drops tzinfo on round-trip
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value):
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
