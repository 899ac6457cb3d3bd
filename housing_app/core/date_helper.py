from datetime import date, datetime, timezone


def utcnow() -> datetime:
    # Stored naive so SQLite and PostgreSQL round-trip the same value.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    return utcnow().date()


def agreement_period(now: datetime | None = None) -> str:
    now = now or utcnow()
    return f"{now:%y%m}"
