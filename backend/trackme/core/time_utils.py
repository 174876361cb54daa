from datetime import datetime, timezone


def seconds_to_hhmmss(total_seconds: int) -> str:
    """
    Convert total seconds (int) -> 'HH:MM:SS'.
    Example: 2732 -> '00:45:32'
    """
    total_seconds = max(int(total_seconds), 0)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def ensure_utc(dt: datetime) -> datetime:
    """Return `dt` as an aware UTC datetime. Naive values are assumed UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_local_datetime(dt, tz_name: str | None = None):
    """Convert a datetime from source tz (assume UTC if naive) to local or given tz.

    - If `tz_name` is 'local' or None: use system local timezone.
    - If `tz_name` is IANA tz name (e.g., 'America/New_York'): use that.
    - If `dt` has no tzinfo, assume UTC.
    """
    dt = ensure_utc(dt)
    if tz_name and tz_name != "local":
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
        try:
            return dt.astimezone(ZoneInfo(tz_name))
        except (ZoneInfoNotFoundError, ValueError):
            return dt.astimezone()
    return dt.astimezone()
