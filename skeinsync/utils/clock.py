from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC; every timestamp column in the schema is stored this way."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
