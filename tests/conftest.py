"""Shared fixtures: stub line servers and SOCKS4 proxies on localhost."""

from __future__ import annotations

from asyncio import (
    IncompleteReadError,
    Server,
    StreamReader,
    StreamWriter,
    get_running_loop,
    sleep as asyncio_sleep,
    start_server,
    wait_for as asyncio_wait_for,
)
from contextlib import suppress as contextlib_suppress
from dataclasses import dataclass, field
from socket import SO_LINGER, SOL_SOCKET
from struct import pack
from typing import TYPE_CHECKING

from pytest_asyncio import fixture as asyncio_fixture

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@dataclass
class LineServer:
    """Stub server that sends a greeting and records every line it receives."""

    greeting: bytes = b""
    close_after_greeting: bool = False
    received: list[tuple[float, bytes]] = field(default_factory=list)
    server: Server | None = None
    writers: list[StreamWriter] = field(default_factory=list)

    @property
    def port(self) -> int:
        """Port the server is listening on."""
        return self.server.sockets[0].getsockname()[1]

    @property
    def lines(self) -> list[bytes]:
        """Received lines without timestamps."""
        return [line for _, line in self.received]

    async def start(self) -> None:
        """Start listening on an ephemeral localhost port."""
        self.server = await start_server(self.handle, "127.0.0.1", 0)

    async def handle(self, reader: StreamReader, writer: StreamWriter) -> None:
        """Serve one client connection."""
        self.writers.append(writer)
        if self.greeting:
            writer.write(self.greeting)
            await writer.drain()
        if self.close_after_greeting:
            writer.close()
            return
        with contextlib_suppress(OSError):
            while line := await reader.readline():
                self.received.append((get_running_loop().time(), line))
        writer.close()

    async def wait_for_clients(self, count: int = 1, time_limit: float = 2.0) -> None:
        """Wait until at least ``count`` clients have connected."""

        async def poll() -> None:
            while len(self.writers) < count:
                await asyncio_sleep(0.005)

        await asyncio_wait_for(poll(), timeout=time_limit)

    def reset_clients(self) -> None:
        """Drop every client connection with a TCP reset rather than a clean close."""
        for writer in self.writers:
            writer.get_extra_info("socket").setsockopt(SOL_SOCKET, SO_LINGER, pack("ii", 1, 0))
            writer.transport.abort()

    async def wait_for_lines(self, count: int, time_limit: float = 2.0) -> None:
        """Wait until at least ``count`` lines have arrived."""

        async def poll() -> None:
            while len(self.received) < count:
                await asyncio_sleep(0.005)

        await asyncio_wait_for(poll(), timeout=time_limit)

    async def stop(self) -> None:
        """Close client connections and the listening socket."""
        for writer in self.writers:
            writer.close()
        if self.server is not None:
            self.server.close()
            with contextlib_suppress(TimeoutError):
                await asyncio_wait_for(self.server.wait_closed(), timeout=1.0)


@dataclass
class Socks4Proxy(LineServer):
    """Stub SOCKS4 proxy that answers with a fixed status.

    When the status is granted it then behaves like a LineServer, standing in
    for the proxied destination.
    """

    status: int = 0x5A
    reply: bytes | None = None
    requests: list[bytes] = field(default_factory=list)

    async def handle(self, reader: StreamReader, writer: StreamWriter) -> None:
        """Read one SOCKS4 request, reply, then serve lines if granted."""
        self.writers.append(writer)
        try:
            header = await reader.readexactly(8)
            user_id = await reader.readuntil(b"\x00")
        except IncompleteReadError:
            writer.close()
            return
        self.requests.append(header + user_id)

        reply = self.reply if self.reply is not None else bytes([0x00, self.status, 0, 0, 0, 0, 0, 0])
        writer.write(reply)
        await writer.drain()
        if self.status != 0x5A or self.reply is not None:
            writer.close()
            return
        await super().handle(reader, writer)


@asyncio_fixture
async def line_server() -> AsyncGenerator[LineServer]:
    """Fixture providing a running stub line server."""
    server = LineServer()
    await server.start()
    yield server
    await server.stop()


@asyncio_fixture
async def socks4_proxy() -> AsyncGenerator[Socks4Proxy]:
    """Fixture providing a running stub SOCKS4 proxy that grants requests."""
    proxy = Socks4Proxy(greeting=b"welcome\r\n")
    await proxy.start()
    yield proxy
    await proxy.stop()
