"""System clock adapter — implements Clock using the configured timezone."""

from __future__ import annotations

from datetime import datetime, tzinfo

from src.config import settings


class SystemClock:
    """Wall-clock implementation of Clock."""

    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz or settings.tz

    def now(self) -> datetime:
        return datetime.now(self._tz)

