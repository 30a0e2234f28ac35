"""Clock port — injectable wall clock.

Core modules never call datetime.now() directly so tests can pin "now".
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    """Abstract clock used by core modules."""

    def now(self) -> datetime:
        """Return the current time as an aware datetime in local time."""
        ...
