from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time, naive, to compare with the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
