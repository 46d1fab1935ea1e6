"""Exception types raised by the telnet agent.

Errors raised while a session is being established surface to the caller of
``connect``/``connect_via_proxy``. Once connected, only genuine transport
faults surface from ``send``; everything else drives teardown and is observed
through the ``connection_closed`` notification.
"""

from __future__ import annotations


class TelnetAgentError(Exception):
    """Base class for all telnet agent errors."""


class ReuseError(TelnetAgentError):
    """A session was asked to connect more than once."""


class SessionConnectionError(TelnetAgentError, ConnectionError):
    """The TCP connection to the target or proxy could not be established."""


class ResolutionError(TelnetAgentError):
    """The target host has no IPv4 address."""


class ProxyError(TelnetAgentError):
    """The SOCKS4 proxy refused or failed the connect request."""

    def __init__(self, status: int | None, reason: str) -> None:
        """Store the proxy status byte alongside the reason."""
        self.status = status
        self.reason = reason
        if status is None:
            super().__init__(f"Proxy connect request failed: {reason}")
        else:
            super().__init__(f"Proxy connect request failed (0x{status:02x}): {reason}")


class TransportError(TelnetAgentError, OSError):
    """The socket failed unexpectedly during an established session."""
