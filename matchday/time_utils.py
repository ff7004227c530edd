from datetime import UTC, datetime


def utcnow_naive():
    """Return current UTC timestamp as naive datetime for DB timestamp columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value):
    """Normalize an aware datetime to naive UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_iso_datetime(raw_value):
    """Parse an ISO-8601 string (``Z`` suffix allowed) into naive UTC, or None."""
    raw = str(raw_value or '').strip()
    if not raw:
        return None
    if raw.endswith('Z'):
        raw = raw[:-1] + '+00:00'
    try:
        return to_naive_utc(datetime.fromisoformat(raw))
    except ValueError:
        return None


def isoformat_utc(value):
    """Render a naive UTC datetime the way JavaScript's toISOString does."""
    if value is None:
        return None
    value = to_naive_utc(value)
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f'{value.microsecond // 1000:03d}Z'
