from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive Werte (z.B. aus SQLite gelesen) gelten als UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hours_between(start: datetime | None, end: datetime | None) -> float:
    """Stunden zwischen zwei Zeitpunkten; 0 bei fehlendem oder nicht positivem Intervall."""
    if start is None or end is None:
        return 0.0
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return max(0.0, seconds / 3600)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Halboffene Intervalle: aneinandergrenzende Enden überlappen nicht."""
    return as_utc(a_start) < as_utc(b_end) and as_utc(b_start) < as_utc(a_end)
