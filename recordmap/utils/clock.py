"""Timestamp source for the created_at / updated_at audit columns."""
from __future__ import annotations

from datetime import datetime
from typing import Callable

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

Clock = Callable[[], str]


def now_string() -> str:
    """Current local time as a `YYYY-MM-DD HH:MM:SS` string."""
    return datetime.now().strftime(TIMESTAMP_FORMAT)


__all__ = ["Clock", "DATE_FORMAT", "TIMESTAMP_FORMAT", "now_string"]
