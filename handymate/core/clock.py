from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Naiv UTC-tid. Databasen lagrar tidsstämplar utan tidszon.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
