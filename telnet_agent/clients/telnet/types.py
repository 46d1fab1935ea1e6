"""Telnet session types module."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING, NamedTuple, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable


class SessionState(StrEnum):
    """Lifecycle states of a telnet session, only ever moving forward."""

    CREATED = "created"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        """Check if the session is shutting down or already shut down.

        Returns:
            True for CLOSING and CLOSED, False otherwise
        """
        return self in {SessionState.CLOSING, SessionState.CLOSED}


class Socks4Command(IntEnum):
    """SOCKS4 request commands."""

    CONNECT = 0x01
    BIND = 0x02  # Not supported, listed for completeness


class Socks4Status(IntEnum):
    """SOCKS4 reply status codes."""

    GRANTED = 0x5A
    REJECTED = 0x5B
    IDENTD_UNREACHABLE = 0x5C
    IDENTD_MISMATCH = 0x5D

    @classmethod
    def describe(cls, status: int) -> str:
        """Get a human readable reason for a reply status.

        Returns:
            The reason string, or a generic message for unknown codes
        """
        return {
            cls.GRANTED: "request granted",
            cls.REJECTED: "request rejected or failed",
            cls.IDENTD_UNREACHABLE: "client is not running identd (or not reachable from the server)",
            cls.IDENTD_MISMATCH: "client's identd could not confirm the user ID string in the request",
        }.get(status, "unknown error")


class Socks4Reply(NamedTuple):
    """Decoded SOCKS4 reply; only the status byte is meaningful."""

    status: int
    raw: bytes = b""

    @property
    def granted(self) -> bool:
        """Check if the proxy granted the request."""
        return self.status == Socks4Status.GRANTED


class ReadResult(NamedTuple):
    """Outcome of a single line read.

    ``closed`` is set when the stream ended or failed, in which case ``data``
    is empty and the read loop should stop.
    """

    data: bytes = b""
    closed: bool = False


@runtime_checkable
class SessionListener(Protocol):
    """Receives notifications from a telnet session."""

    def message_received(self, text: str) -> None:
        """Handle one received line, which may be empty."""

    def connection_closed(self) -> None:
        """Handle the session terminating; called exactly once."""


@dataclass(slots=True)
class CallbackListener:
    """Adapt plain callables to the SessionListener protocol."""

    on_message: Callable[[str], object] | None = field(default=None)
    on_closed: Callable[[], object] | None = field(default=None)

    def message_received(self, text: str) -> None:
        """Forward a received line to the message callback."""
        if self.on_message is not None:
            self.on_message(text)

    def connection_closed(self) -> None:
        """Forward the close notification to the closed callback."""
        if self.on_closed is not None:
            self.on_closed()
