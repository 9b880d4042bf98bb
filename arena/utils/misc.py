import datetime


def get_utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def get_utc_iso_now() -> str:
    return get_utc_now().isoformat()


def ensure_utc(dt: datetime.datetime) -> datetime.datetime:
    """Attach UTC to naive datetimes, e.g. ones read back from SQLite."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.UTC)
    return dt.astimezone(datetime.UTC)
