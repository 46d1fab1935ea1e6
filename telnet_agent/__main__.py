"""Main entry point for the telnet agent."""

from __future__ import annotations

from asyncio import run as asyncio_run
from contextlib import suppress as contextlib_suppress
from sys import exit as sys_exit

from .cli import main


def launch() -> None:
    """Launch the telnet agent CLI, exiting with its status."""
    status = 130  # Interrupted by Ctrl+C
    with contextlib_suppress(KeyboardInterrupt):
        status = asyncio_run(main())
    sys_exit(status)


if __name__ == "__main__":
    launch()
