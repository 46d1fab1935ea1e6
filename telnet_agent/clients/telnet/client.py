"""Asynchronous line-oriented telnet session module.

This module provides TelnetSession, a single-use client that owns one TCP
connection, reads newline-delimited text from it in a background task and
throttles outbound lines so the remote endpoint is never flooded.

The session does not negotiate telnet options: the connection is treated as
raw newline-delimited text in both directions.
"""

from __future__ import annotations

from asyncio import (
    FIRST_COMPLETED,
    CancelledError as AsyncioCancelledError,
    Event,
    Lock,
    StreamReader,
    StreamWriter,
    Task,
    create_task as asyncio_create_task,
    current_task as asyncio_current_task,
    ensure_future as asyncio_ensure_future,
    open_connection,
    timeout as asyncio_timeout,
    wait as asyncio_wait,
    wait_for as asyncio_wait_for,
)
from contextlib import suppress as contextlib_suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Self, TypeVar

from telnet_agent.cli.console import log
from telnet_agent.constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_ENCODING,
    DEFAULT_LINE_LIMIT,
    DEFAULT_NEWLINE,
    DEFAULT_SEND_RATE,
    MAX_PORT,
    MIN_PORT,
)
from telnet_agent.errors import ReuseError, SessionConnectionError, TelnetAgentError, TransportError

from .socks4 import handshake as socks4_handshake, resolve_ipv4
from .types import ReadResult, SessionListener, SessionState

T = TypeVar("T")

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from logging import Logger


@dataclass(slots=True, eq=False)
class TelnetSession:
    """Single-use, throttled, line-oriented TCP session.

    A session connects once, directly or through a SOCKS4 proxy, and then runs
    until the remote side closes, the socket fails, the caller disconnects or
    ``cancel_event`` is set. All four paths converge on the same teardown and
    listeners are told ``connection_closed`` exactly once. To reconnect, create
    a new session.

    Examples:
        ```python
        stop = asyncio.Event()
        session = TelnetSession("192.168.1.20", 23, send_rate=3.0, cancel_event=stop)
        session.add_listener(CallbackListener(on_message=print))
        await session.connect()
        await session.send("adminUser")
        await session.send("adminPassword")
        await session.disconnect()
        ```

        Or as a context manager:

        ```python
        async with TelnetSession("device.example.com", 23) as session:
            await session.send("show version")
        ```
    """

    host: str
    port: int
    send_rate: float = field(default=DEFAULT_SEND_RATE)
    cancel_event: Event | None = field(default=None)
    connect_timeout: float = field(default=DEFAULT_CONNECT_TIMEOUT)
    encoding: str = field(default=DEFAULT_ENCODING)
    newline: str = field(default=DEFAULT_NEWLINE)
    line_limit: int = field(default=DEFAULT_LINE_LIMIT)
    logger: Logger = field(default=log, repr=False)

    reader: StreamReader | None = field(default=None, init=False, repr=False)
    writer: StreamWriter | None = field(default=None, init=False, repr=False)
    state: SessionState = field(default=SessionState.CREATED, init=False)

    # Serialises and spaces out sends
    _gate: Lock = field(default_factory=Lock, init=False, repr=False)
    # Internal cancellation, set once teardown starts
    _closing: Event = field(default_factory=Event, init=False, repr=False)
    _closed: Event = field(default_factory=Event, init=False, repr=False)
    _listeners: list[SessionListener] = field(default_factory=list, init=False, repr=False)
    _read_task: Task[None] | None = field(default=None, init=False, repr=False)
    _watch_task: Task[None] | None = field(default=None, init=False, repr=False)
    _closed_notified: bool = field(default=False, init=False, repr=False)

    @classmethod
    async def connect_to(cls, host: str, port: int, **kwargs: Any) -> Self:
        """Create a session and connect it directly in one step.

        Args:
            host: The hostname or IP address to connect to
            port: The TCP port to connect to
            **kwargs: Additional parameters to pass to the TelnetSession constructor

        Returns:
            A connected TelnetSession instance
        """
        session = cls(host=host, port=port, **kwargs)
        await session.connect()
        return session

    async def __aenter__(self) -> Self:
        """Enter the async context manager, connecting if not yet connected.

        Returns:
            The connected session
        """
        if self.state is SessionState.CREATED:
            await self.connect()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Exit the async context manager, disconnecting the session."""
        await self.disconnect()

    @property
    def is_connected(self) -> bool:
        """Check if the session is connected and not shutting down."""
        return self.state is SessionState.CONNECTED

    def add_listener(self, listener: SessionListener) -> None:
        """Register a listener for received lines and the close notification."""
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        """Unregister a listener; unknown listeners are ignored."""
        with contextlib_suppress(ValueError):
            self._listeners.remove(listener)

    async def connect(self) -> None:
        """Connect directly to host:port and start the read loop.

        Returns once the socket is open; it does not wait for any data.

        Raises:
            ValueError: If the port is out of range
            ReuseError: If this session has connected (or tried to) before
            SessionConnectionError: If the connection cannot be established
        """
        self._begin_connect()
        self.logger.info("Connecting to %s:%d", self.host, self.port)
        try:
            await self._open(self.host, self.port)
            self._start()
        except BaseException:
            await self.disconnect()
            raise
        self.logger.debug("Connected to %s:%d", self.host, self.port)

    async def connect_via_proxy(self, proxy_host: str, proxy_port: int, proxy_user_id: str | None = "") -> None:
        """Connect to host:port through a SOCKS4 proxy and start the read loop.

        Args:
            proxy_host: The hostname or IP address of the SOCKS4 proxy
            proxy_port: The TCP port of the SOCKS4 proxy
            proxy_user_id: User id sent to the proxy, may be empty

        Raises:
            ValueError: If a port is out of range or the user id is not ASCII
            ReuseError: If this session has connected (or tried to) before
            SessionConnectionError: If the proxy cannot be reached or the handshake times out
            ResolutionError: If the target host has no IPv4 address
            ProxyError: If the proxy does not grant the request
        """
        self._begin_connect(proxy_port, proxy_user_id)
        self.logger.info(
            "Connecting to %s:%d via SOCKS4 proxy %s:%d", self.host, self.port, proxy_host, proxy_port
        )
        try:
            await self._open(proxy_host, proxy_port)
            address = await self._guarded(resolve_ipv4(self.host, self.port), f"Resolving {self.host}")
            await self._guarded(
                socks4_handshake(self.reader, self.writer, address, self.port, proxy_user_id),
                f"SOCKS4 handshake with {proxy_host}:{proxy_port}",
            )
            self._start()
        except TelnetAgentError as e:
            self.logger.error("Proxy connection to %s:%d failed: %s", self.host, self.port, e)
            await self.disconnect()
            raise
        except BaseException:
            await self.disconnect()
            raise
        self.logger.debug("Connected to %s:%d via %s:%d", self.host, self.port, proxy_host, proxy_port)

    def _begin_connect(self, proxy_port: int | None = None, proxy_user_id: str | None = None) -> None:
        """Move from CREATED to CONNECTING, or refuse a second connect.

        Arguments are validated first, so a rejected call leaves the session
        untouched.

        Raises:
            ValueError: If a port is out of range or the proxy user id is not ASCII
            ReuseError: If the session is not in the CREATED state
        """
        for port in (self.port, proxy_port):
            if port is not None and not MIN_PORT <= port <= MAX_PORT:
                msg = f"Invalid port: {port}"
                raise ValueError(msg)
        if proxy_user_id and not proxy_user_id.isascii():
            msg = f"Invalid proxy user id: {proxy_user_id!r}, must be ASCII"
            raise ValueError(msg)
        if self.state is not SessionState.CREATED:
            msg = (
                f"Connect aborted: session is {self.state}. Reconnecting is not supported, "
                "create a new TelnetSession instead"
            )
            raise ReuseError(msg)
        self.state = SessionState.CONNECTING
        if self.cancel_event is not None:
            self._watch_task = asyncio_create_task(
                self._watch_cancellation(), name=f"telnet-cancel-{self.host}:{self.port}"
            )

    async def _open(self, host: str, port: int) -> None:
        """Open the TCP connection that this session will own.

        Raises:
            SessionConnectionError: If the connection fails, times out or teardown starts first
        """
        self.reader, self.writer = await self._guarded(
            open_connection(host, port, limit=self.line_limit),
            f"Connect to {host}:{port}",
            discard=lambda streams: streams[1].close(),
        )
        if self._closing.is_set():
            # Teardown ran before the streams were assigned
            await self._close_streams()
            msg = f"Connect to {host}:{port} aborted: session is closing"
            raise SessionConnectionError(msg)

    def _start(self) -> None:
        """Mark the session connected and spawn the read loop.

        Raises:
            SessionConnectionError: If teardown started during the handshake
        """
        if self._closing.is_set():
            msg = f"Connect to {self.host}:{self.port} aborted: session is closing"
            raise SessionConnectionError(msg)
        self.state = SessionState.CONNECTED
        self._read_task = asyncio_create_task(self._read_loop(), name=f"telnet-read-{self.host}:{self.port}")

    async def _guarded(
        self, awaitable: Awaitable[T], action: str, discard: Callable[[T], object] | None = None
    ) -> T:
        """Run one connection step under the connect timeout, aborting on teardown.

        ``discard`` is passed on to ``_until_closing``.

        Returns:
            The step's result

        Raises:
            SessionConnectionError: On timeout, socket errors or teardown
        """
        try:
            async with asyncio_timeout(self.connect_timeout):
                completed, result = await self._until_closing(awaitable, discard)
        except TelnetAgentError:
            raise
        except TimeoutError as e:
            msg = f"{action} timed out after {self.connect_timeout}s"
            self.logger.error(msg)
            raise SessionConnectionError(msg) from e
        except OSError as e:
            msg = f"{action} failed: {e}"
            self.logger.error(msg)
            raise SessionConnectionError(msg) from e
        if not completed:
            msg = f"{action} aborted: session is closing"
            raise SessionConnectionError(msg)
        return result

    async def _until_closing(
        self, awaitable: Awaitable[T], discard: Callable[[T], object] | None = None
    ) -> tuple[bool, T | None]:
        """Await something unless teardown starts first.

        If the caller is cancelled after the awaitable already finished, its
        result is handed to ``discard`` so anything it holds can be released.

        Returns:
            (True, result) if the awaitable finished, (False, None) if teardown won the race
        """
        task = asyncio_ensure_future(awaitable)
        closing = asyncio_ensure_future(self._closing.wait())
        try:
            await asyncio_wait({task, closing}, return_when=FIRST_COMPLETED)
        except AsyncioCancelledError:
            if not task.done():
                task.cancel()
            elif discard is not None and not task.cancelled() and task.exception() is None:
                discard(task.result())
            raise
        finally:
            closing.cancel()

        if not task.done():
            task.cancel()
            await asyncio_wait({task})
        if task.cancelled():
            return False, None
        return True, task.result()

    async def send(self, text: str) -> bool:
        """Send one line, then hold the send gate for ``send_rate`` seconds.

        Concurrent callers queue behind the gate, so consecutive writes are
        always at least ``send_rate`` apart and land in the order the gate
        admits them.

        Args:
            text: The line to send, without a line terminator

        Returns:
            True if the line was written, False if it was abandoned because the
            session is closing or closed

        Raises:
            TransportError: If the socket failed unexpectedly mid-write
        """
        if self.state is not SessionState.CONNECTED:
            self.logger.debug("Send aborted: session is %s", self.state)
            return False

        acquired, _ = await self._until_closing(self._gate.acquire(), discard=lambda _: self._gate.release())
        if not acquired:
            self.logger.debug("Send aborted: session closed while waiting for the send gate")
            return False

        try:
            if self.state is not SessionState.CONNECTED or self.writer is None:
                self.logger.debug("Send aborted: session is %s", self.state)
                return False
            try:
                self.writer.write(text.encode(self.encoding) + self.newline.encode(self.encoding))
                await self.writer.drain()
            except OSError as e:
                if self.state.is_terminal:
                    self.logger.debug("Send failed: connection closed during teardown")
                    return False
                self.logger.error("Send failed: socket disconnected unexpectedly")
                msg = f"Send to {self.host}:{self.port} failed: {e}"
                raise TransportError(msg) from e
            except Exception:
                self.logger.exception("Send failed")
                raise
            await self._throttle()
            return True
        finally:
            self._gate.release()

    async def _throttle(self) -> None:
        """Sleep for the send rate, waking early once teardown starts."""
        if self.send_rate <= 0:
            return
        with contextlib_suppress(TimeoutError):
            await asyncio_wait_for(self._closing.wait(), timeout=self.send_rate)
        if self._closing.is_set():
            self.logger.debug("Send throttle interrupted: session is closing")

    async def _read_loop(self) -> None:
        """Background task delivering received lines until the stream ends."""
        try:
            while True:
                if self._closing.is_set():
                    self.logger.debug("Read loop stopped: session is closing")
                    break

                result = await self._read_line()
                if result.closed:
                    break

                for line in self._split_lines(result.data):
                    self._notify("message_received", line)
        finally:
            self.logger.debug("Read loop for %s:%d completed, disconnecting", self.host, self.port)
            await self.disconnect()

    async def _read_line(self) -> ReadResult:
        """Read one line from the socket.

        Returns:
            The raw line, or a closed result on end of stream and socket errors
        """
        reader = self.reader
        if reader is None or reader.at_eof():
            self.logger.debug("Read loop stopped: stream is not connected")
            return ReadResult(closed=True)

        try:
            data = await reader.readline()
        except OSError:
            if self.state.is_terminal:
                self.logger.debug("Read loop stopped: stream closed during teardown")
            else:
                self.logger.warning("Read loop stopped: socket disconnected unexpectedly")
            return ReadResult(closed=True)
        except ValueError:
            self.logger.warning("Read loop stopped: line longer than %d bytes", self.line_limit)
            return ReadResult(closed=True)

        if not data:
            self.logger.debug("Read loop stopped: end of stream")
            return ReadResult(closed=True)
        return ReadResult(data=data)

    def _split_lines(self, data: bytes) -> list[str]:
        """Decode a raw line and strip its terminator.

        A bare CR inside the line also ends a line, so servers sending
        over-eager EOL markers produce empty lines rather than stray CRs.

        Returns:
            One or more lines, possibly empty strings
        """
        text = data.decode(self.encoding, errors="replace")
        return text.removesuffix("\n").removesuffix("\r").split("\r")

    async def _watch_cancellation(self) -> None:
        """Disconnect once the caller's cancel event is set."""
        await self.cancel_event.wait()
        self.logger.info("Cancellation requested for %s:%d", self.host, self.port)
        await self.disconnect()

    async def disconnect(self) -> None:
        """Tear the session down; safe to call repeatedly and concurrently.

        Stops pending sends and the read loop, closes the streams and the
        socket, then notifies listeners. Close failures are logged, never
        raised. The session cannot be used again afterwards.
        """
        if self.state.is_terminal:
            # Internal tasks must not wait on a teardown that waits on them
            if asyncio_current_task() not in {self._read_task, self._watch_task}:
                await self._closed.wait()
            return

        self.state = SessionState.CLOSING
        self.logger.debug("Disconnecting from %s:%d", self.host, self.port)
        try:
            self._closing.set()
            await self._close_streams()
            await self._join_tasks()
        finally:
            self.state = SessionState.CLOSED
            self._closed.set()
            self._notify_closed()

    async def close(self) -> None:
        """Release the session's resources; same as disconnect."""
        await self.disconnect()

    async def wait_closed(self) -> None:
        """Wait until the session has been torn down."""
        await self._closed.wait()

    async def _close_streams(self) -> None:
        """Close the input stream, the output stream and the socket."""
        reader, writer = self.reader, self.writer
        self.reader = self.writer = None

        if reader is not None:
            try:
                reader.feed_eof()
            except Exception:
                self.logger.exception("Error closing input stream")

        if writer is None:
            return
        try:
            writer.close()
            async with asyncio_timeout(self.connect_timeout):
                await writer.wait_closed()
        except TimeoutError:
            self.logger.warning("Timed out closing connection to %s:%d, aborting", self.host, self.port)
            writer.transport.abort()
        except OSError as e:
            self.logger.debug("Socket error while closing: %s", e)
        except Exception:
            self.logger.exception("Error closing connection")
        else:
            self.logger.debug("Closed connection to %s:%d", self.host, self.port)

    async def _join_tasks(self) -> None:
        """Stop the cancellation watcher and wait for the read loop to exit."""
        me = asyncio_current_task()
        if self._watch_task is not None and self._watch_task is not me:
            self._watch_task.cancel()
            await asyncio_wait({self._watch_task})
        if self._read_task is not None and self._read_task is not me:
            await asyncio_wait({self._read_task})

    def _notify(self, method: str, *args: Any) -> None:
        """Call a listener method on every listener, logging failures."""
        for listener in tuple(self._listeners):
            try:
                getattr(listener, method)(*args)
            except Exception:
                self.logger.exception("Listener %r failed in %s", listener, method)

    def _notify_closed(self) -> None:
        """Send the close notification, at most once per session."""
        if self._closed_notified:
            return
        self._closed_notified = True
        self.logger.info("Connection to %s:%d closed", self.host, self.port)
        self._notify("connection_closed")
