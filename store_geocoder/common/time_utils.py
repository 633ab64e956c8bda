"""UTC-focused helpers for run metadata and snapshot ordering."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_timestamp_iso(now: datetime | None = None) -> str:
    current = now or datetime.now(tz=timezone.utc)
    return current.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_epoch_ms() -> int:
    return int(datetime.now(tz=timezone.utc).timestamp() * 1000)


def parse_epoch_ms(value: object) -> int | None:
    """Epoch milliseconds for an ISO-8601 value, or ``None`` when it cannot be parsed."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
