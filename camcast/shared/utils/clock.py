import time
from datetime import datetime, timezone

utc_now = lambda: datetime.now(timezone.utc)  # noqa: E731
utc_now_ms = lambda: int(time.time() * 1000)  # noqa: E731
dt_to_ms = lambda dt: int(dt.timestamp() * 1000)  # noqa: E731


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (MongoDB returns naive UTC by default)."""
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)
