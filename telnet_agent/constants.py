"""Constants for the telnet agent."""

from __future__ import annotations

from pathlib import Path
from typing import Any

# Network protocol constants

MIN_PORT = 1
MAX_PORT = 65535
DEFAULT_TELNET_PORT = 23

SOCKS4_VERSION = 0x04
SOCKS4_REPLY_LENGTH = 8

# Session defaults

DEFAULT_SEND_RATE = 3.0  # Seconds held between consecutive sends
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_ENCODING = "utf-8"
DEFAULT_NEWLINE = "\r\n"
DEFAULT_LINE_LIMIT = 2**16  # Longest line the read loop will buffer

# CLI constants

CLI_ARGUMENTS: dict[str, list[tuple[Any]]] = {
    "target": [
        (["host"], {"help": "Hostname or IP address to connect to"}),
        (["-p", "--port"], {"type": int, "default": DEFAULT_TELNET_PORT, "metavar": "<23>"}),
        (["--proxy"], {"help": "SOCKS4 proxy as host:port", "metavar": "host:port"}),
        (["--proxy-user"], {"default": "", "help": "SOCKS4 user id", "metavar": "<''>"}),
    ],
    "session": [
        (["-r", "--send-rate"], {"type": float, "default": DEFAULT_SEND_RATE, "metavar": "<3>"}),
        (["-t", "--timeout"], {"type": float, "default": DEFAULT_CONNECT_TIMEOUT, "metavar": "<10>"}),
        (["-u", "--username"], {"help": "Line sent first after connecting"}),
        (["-w", "--password"], {"help": "Line sent after the username"}),
        (["--raw"], {"action": "store_true", "help": "Print received text without stripping control characters"}),
        (["-v", "--verbose"], {"action": "count", "default": 0, "help": "Increase log verbosity (-v, -vv)"}),
    ],
    "files": [
        (["-s", "--script"], {"help": "Command script to send instead of stdin", "type": Path}),
        (
            ["-sf", "--script-format"],
            {"choices": ["csv", "json", "plain", "xlsx"], "default": "plain", "metavar": "csv|json|<plain>|xlsx"},
        ),
        (["-o", "--output"], {"help": "Transcript file for received lines", "type": Path}),
        (
            ["-of", "--output-format"],
            {"choices": ["csv", "json", "plain", "xlsx"], "default": "plain", "metavar": "csv|json|<plain>|xlsx"},
        ),
    ],
}
CLI_HELP_DESCRIPTION: str = """Telnet agent: a throttled, line-oriented TCP client.

Connects to a remote host, directly or through a SOCKS4 proxy, prints every
line the remote side sends and forwards your input one line at a time,
never faster than the configured send rate.
"""
CLI_HELP_EPILOGUE: str | None = "If an argument has a default, it's shown in <parentheses>."
CLI_HELP_NAME: str = "telnet-agent"
