"""Throttled, line-oriented telnet agent.

This package provides an asyncio TCP client for talking to line-based services
such as telnet consoles, MUDs and device command shells. A TelnetSession
connects once, directly or through a SOCKS4 proxy, delivers every received
line to its listeners from a background read loop, and spaces outbound lines
at least ``send_rate`` seconds apart so the remote endpoint is never flooded.

Telnet option negotiation is deliberately not performed: the connection is
treated as raw newline-delimited text.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from .cli import console, log, parse_args
from .clients.telnet import CallbackListener, SessionListener, SessionState, TelnetSession
from .errors import (
    ProxyError,
    ResolutionError,
    ReuseError,
    SessionConnectionError,
    TelnetAgentError,
    TransportError,
)
from .sanitize import trim_non_printable

__all__ = [
    "CallbackListener",
    "ProxyError",
    "ResolutionError",
    "ReuseError",
    "SessionConnectionError",
    "SessionListener",
    "SessionState",
    "TelnetAgentError",
    "TelnetSession",
    "TransportError",
    "console",
    "log",
    "parse_args",
    "trim_non_printable",
]

try:
    __version__ = version("telnet-agent")
except PackageNotFoundError:
    __version__ = "0.0.0"
