"""Type definitions shared across the telnet agent package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal, TypeAlias

JSON_TYPE: TypeAlias = "bool | dict[str, JSON_TYPE] | float | int | list[JSON_TYPE] | str | None"


@dataclass(slots=True, frozen=True)
class TranscriptEntry:
    """One line that crossed the session, in either direction."""

    direction: Literal["sent", "received"]
    text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_dict(self) -> dict[str, JSON_TYPE]:
        """Convert the entry to a dictionary.

        Returns:
            Dictionary representation with an ISO 8601 timestamp
        """
        return {
            "timestamp": self.timestamp.isoformat(),
            "direction": self.direction,
            "text": self.text,
        }

    def __str__(self) -> str:
        """Render the entry as a transcript line."""
        marker = ">" if self.direction == "sent" else "<"
        return f"{self.timestamp.isoformat()} {marker} {self.text}"
