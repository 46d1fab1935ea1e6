"""SOCKS4 connect handshake helpers.

Implements the client side of https://www.openssh.com/txt/socks4.protocol for
the CONNECT command only. BIND, SOCKS4a hostname forwarding and SOCKS5 are not
supported.
"""

from __future__ import annotations

from asyncio import IncompleteReadError, get_running_loop
from ipaddress import AddressValueError, IPv4Address
from socket import AF_INET, SOCK_STREAM, gaierror as socket_gaierror
from typing import TYPE_CHECKING

from telnet_agent.constants import MAX_PORT, MIN_PORT, SOCKS4_REPLY_LENGTH, SOCKS4_VERSION
from telnet_agent.errors import ProxyError, ResolutionError

from .types import Socks4Command, Socks4Reply, Socks4Status

if TYPE_CHECKING:
    from asyncio import StreamReader, StreamWriter


def build_request(address: str | IPv4Address, port: int, user_id: str | None = "") -> bytes:
    """Build a SOCKS4 CONNECT request packet.

    Args:
        address: IPv4 address of the final destination
        port: TCP port of the final destination
        user_id: Proxy user id, sent as ASCII; None is treated as empty

    Returns:
        The request bytes: version, command, port, address, user id, NUL

    Raises:
        ValueError: If the port is out of range or the address is not IPv4
    """
    if not MIN_PORT <= port <= MAX_PORT:
        msg = f"Invalid port: {port}"
        raise ValueError(msg)
    try:
        ipv4 = IPv4Address(address)
    except AddressValueError as e:
        msg = f"Invalid IPv4 address: {address}"
        raise ValueError(msg) from e

    packet = bytearray([SOCKS4_VERSION, Socks4Command.CONNECT])
    packet.extend(port.to_bytes(2, "big"))
    packet.extend(ipv4.packed)
    packet.extend((user_id or "").encode("ascii"))
    packet.append(0x00)
    return bytes(packet)


def parse_reply(data: bytes) -> Socks4Reply:
    """Decode a SOCKS4 reply packet.

    Returns:
        The decoded reply

    Raises:
        ProxyError: If fewer than 8 bytes were supplied
    """
    if len(data) < SOCKS4_REPLY_LENGTH:
        msg = f"short reply ({len(data)} of {SOCKS4_REPLY_LENGTH} bytes)"
        raise ProxyError(None, msg)
    return Socks4Reply(status=data[1], raw=bytes(data[:SOCKS4_REPLY_LENGTH]))


async def resolve_ipv4(host: str, port: int) -> IPv4Address:
    """Resolve a hostname to its first IPv4 address.

    Returns:
        The first IPv4 address the resolver reports

    Raises:
        ResolutionError: If the host cannot be resolved or has no IPv4 address
    """
    try:
        return IPv4Address(host)
    except AddressValueError:
        pass

    try:
        infos = await get_running_loop().getaddrinfo(host, port, family=AF_INET, type=SOCK_STREAM)
    except (socket_gaierror, UnicodeError) as e:
        msg = f"Unable to resolve {host}: {e}"
        raise ResolutionError(msg) from e

    for family, _type, _proto, _canonname, sockaddr in infos:
        if family == AF_INET:
            return IPv4Address(sockaddr[0])

    msg = f"No IPv4 address found for {host}"
    raise ResolutionError(msg)


async def handshake(
    reader: StreamReader, writer: StreamWriter, address: IPv4Address, port: int, user_id: str | None = ""
) -> Socks4Reply:
    """Ask the proxy to connect us to address:port.

    The request is written in a single call and exactly 8 reply bytes are
    read back. After a granted reply the streams carry the proxied traffic.

    Returns:
        The granted reply

    Raises:
        ProxyError: If the proxy closed early or answered with any status but granted
    """
    writer.write(build_request(address, port, user_id))
    await writer.drain()

    try:
        data = await reader.readexactly(SOCKS4_REPLY_LENGTH)
    except IncompleteReadError as e:
        reply = parse_reply(e.partial)
    else:
        reply = parse_reply(data)

    if not reply.granted:
        raise ProxyError(reply.status, Socks4Status.describe(reply.status))
    return reply
