"""Main entry point for the telnet agent CLI.

Connects one TelnetSession, prints what the remote side sends and forwards
either a command script or standard input, one throttled line at a time.
"""

from __future__ import annotations

from asyncio import (
    FIRST_COMPLETED,
    Event,
    Queue,
    ensure_future as asyncio_ensure_future,
    get_running_loop,
    wait as asyncio_wait,
)
from contextlib import suppress as contextlib_suppress
from signal import SIGTERM
from sys import stdin as sys_stdin
from threading import Thread
from typing import TYPE_CHECKING

from telnet_agent.clients.telnet import CallbackListener, TelnetSession
from telnet_agent.errors import TelnetAgentError, TransportError
from telnet_agent.sanitize import trim_non_printable
from telnet_agent.types import TranscriptEntry

from .args import parse_args
from .console import complete_progress, create_progress, log, print_line, update_progress
from .files import FileReader, FileWriter

if TYPE_CHECKING:
    from argparse import Namespace as Arguments
    from collections.abc import Callable


async def send_line(session: TelnetSession, text: str, transcript: list[TranscriptEntry]) -> bool:
    """Send one line and record it in the transcript when it was written.

    Returns:
        True if the line was written, False if the session is closing
    """
    sent = await session.send(text)
    if sent:
        transcript.append(TranscriptEntry(direction="sent", text=text))
    return sent


async def replay_script(session: TelnetSession, commands: list[str], transcript: list[TranscriptEntry]) -> int:
    """Send every command from a script with a progress bar.

    Returns:
        The number of commands written before the session closed
    """
    task_id = create_progress(f"Sending {len(commands)} lines", total=len(commands))
    sent = 0
    try:
        for command in commands:
            if not await send_line(session, command, transcript):
                log.warning("Session closed after %d of %d lines", sent, len(commands))
                break
            sent += 1
            update_progress(task_id, advance=1)
    finally:
        complete_progress(task_id, f"Sent {sent} of {len(commands)} lines")
    return sent


def _read_stdin(queue: Queue[str | None]) -> None:
    """Feed stdin lines into an asyncio queue from a daemon thread; None marks EOF."""
    loop = get_running_loop()

    def pump() -> None:
        for line in sys_stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line.rstrip("\r\n"))
        loop.call_soon_threadsafe(queue.put_nowait, None)

    Thread(target=pump, name="telnet-agent-stdin", daemon=True).start()


async def forward_stdin(session: TelnetSession, transcript: list[TranscriptEntry]) -> None:
    """Send stdin lines until EOF or until the session closes."""
    queue: Queue[str | None] = Queue()
    _read_stdin(queue)
    closed = asyncio_ensure_future(session.wait_closed())
    try:
        while True:
            next_line = asyncio_ensure_future(queue.get())
            await asyncio_wait({next_line, closed}, return_when=FIRST_COMPLETED)
            if not next_line.done():
                next_line.cancel()
                break
            line = next_line.result()
            if line is None or not await send_line(session, line, transcript):
                break
    finally:
        closed.cancel()


def write_transcript(args: Arguments, transcript: list[TranscriptEntry]) -> None:
    """Write the session transcript in the requested output format."""
    if args.output_format == "plain":
        data = [str(entry) for entry in transcript]
    else:
        data = [entry.as_dict() for entry in transcript]
    if not data and args.output_format == "xlsx":
        log.warning("Transcript is empty, not writing %s", args.output)
        return
    FileWriter(path=args.output, type=args.output_format, data=data)
    log.info("Wrote %d transcript lines to %s", len(data), args.output)


async def run_session(args: Arguments) -> int:
    """Run one session as described by the parsed arguments.

    Returns:
        Process exit status: 0 on success, 1 on connection or transport errors
    """
    commands = FileReader(path=args.script, type=args.script_format).commands() if args.script else None
    transcript: list[TranscriptEntry] = []

    def on_message(text: str) -> None:
        transcript.append(TranscriptEntry(direction="received", text=text))
        print_line(text if args.raw else trim_non_printable(text))

    # SIGTERM cancels the session the same way a caller-owned stop signal would
    stop = Event()
    loop = get_running_loop()
    with contextlib_suppress(NotImplementedError):
        loop.add_signal_handler(SIGTERM, stop.set)
    try:
        return await _drive_session(args, stop, commands, transcript, on_message)
    finally:
        with contextlib_suppress(NotImplementedError):
            loop.remove_signal_handler(SIGTERM)


async def _drive_session(
    args: Arguments,
    stop: Event,
    commands: list[str] | None,
    transcript: list[TranscriptEntry],
    on_message: Callable[[str], None],
) -> int:
    """Connect, send the username, password and commands, then tear down.

    Returns:
        Process exit status
    """
    session = TelnetSession(
        host=args.host,
        port=args.port,
        send_rate=args.send_rate,
        cancel_event=stop,
        connect_timeout=args.timeout,
    )
    session.add_listener(CallbackListener(on_message=on_message, on_closed=lambda: log.info("Connection closed")))

    try:
        if args.proxy:
            await session.connect_via_proxy(*args.proxy, args.proxy_user)
        else:
            await session.connect()
    except TelnetAgentError as e:
        log.error("%s", e)
        return 1

    status = 0
    try:
        for line in (args.username, args.password):
            if line is not None:
                await send_line(session, line, transcript)
        if commands is not None:
            await replay_script(session, commands, transcript)
        else:
            await forward_stdin(session, transcript)
    except TransportError as e:
        log.error("%s", e)
        status = 1
    finally:
        await session.disconnect()
        if args.output:
            write_transcript(args, transcript)
    return status


async def main(argv: list[str] | None = None) -> int:
    """Main entry point for the telnet agent CLI.

    Returns:
        Process exit status
    """
    args = parse_args(argv)
    log.debug(args)
    return await run_session(args)
