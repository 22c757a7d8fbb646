"""Running a DHCP server over a UDP socket."""

from __future__ import annotations

import asyncio
import logging
from ipaddress import IPv4Address, ip_address
from typing import Optional, Protocol, Tuple

from edge_net.dhcp_options import DhcpError
from edge_net.dhcp_packet import Packet
from edge_net.dhcp_server import Server, ServerOptions

_log = logging.getLogger(__name__)

DEFAULT_SERVER_PORT = 67
DEFAULT_CLIENT_PORT = 68

_BROADCAST = str(IPv4Address("255.255.255.255"))
_UNSPECIFIED = IPv4Address("0.0.0.0")

Address = Tuple


class DhcpIoError(Exception):
    """A DHCP exchange failed, either on the socket or in the packet format.

    ``error`` holds the underlying ``OSError`` or ``DhcpError``.
    """

    def __init__(self, error: BaseException) -> None:
        self.error = error
        prefix = "Format error" if isinstance(error, DhcpError) else "IO error"
        super().__init__(f"{prefix}: {error}")

    @property
    def is_format(self) -> bool:
        """Whether the failure lay in the packet format rather than the socket."""
        return isinstance(self.error, DhcpError)


class UdpSocket(Protocol):
    """A datagram socket the DHCP code can send through and receive from."""

    async def send(self, remote: Address, data: bytes) -> None:
        """Send ``data`` to ``remote``."""

    async def receive(self) -> tuple[bytes, Address]:
        """Wait for the next datagram and return it with its sender."""


class _DatagramQueue(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed: Optional[BaseException] = None

    def datagram_received(self, data: bytes, addr) -> None:
        self.queue.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        self.queue.put_nowait(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.closed = exc if exc is not None else ConnectionError("socket closed")
        self.queue.put_nowait(self.closed)


class AsyncioUdpSocket:
    """A UDP socket on the running asyncio event loop."""

    def __init__(self, transport: asyncio.DatagramTransport, protocol: _DatagramQueue) -> None:
        self._transport = transport
        self._protocol = protocol

    @classmethod
    async def bind(cls, local_addr: Address, broadcast: bool = False) -> "AsyncioUdpSocket":
        """Bind a socket to ``local_addr``, allowing broadcast sends if ``broadcast``."""
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            _DatagramQueue, local_addr=local_addr, allow_broadcast=broadcast
        )
        return cls(transport, protocol)

    @property
    def local_addr(self) -> Address:
        """The address the socket is bound to."""
        return self._transport.get_extra_info("sockname")

    async def send(self, remote: Address, data: bytes) -> None:
        if self._transport.is_closing():
            raise ConnectionError("socket closed")
        self._transport.sendto(bytes(data), remote)

    async def receive(self) -> tuple[bytes, Address]:
        item = await self._protocol.queue.get()
        if isinstance(item, BaseException):
            if item is self._protocol.closed:
                self._protocol.queue.put_nowait(item)
            raise item
        return item

    def close(self) -> None:
        self._transport.close()

    async def __aenter__(self) -> "AsyncioUdpSocket":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()


def _reply_address(remote: Address, broadcast: bool) -> Address:
    try:
        host = ip_address(remote[0])
    except ValueError:
        return remote
    if host.version == 4 and (broadcast or host == _UNSPECIFIED):
        return (_BROADCAST, remote[1])
    return remote


async def run_server(
    server: Server, server_options: ServerOptions, socket: UdpSocket
) -> None:
    """Serve DHCP requests arriving on ``socket`` until the socket fails.

    Undecodable packets are skipped. Replies to broadcast requests, or to clients
    without an address yet, go to the IPv4 broadcast address. The lease table lives
    in ``server``, so cancelling this coroutine loses nothing.
    """
    _log.info(
        "Running DHCP server for addresses %s-%s with configuration %r",
        server.range_start,
        server.range_end,
        server_options,
    )

    while True:
        try:
            data, remote = await socket.receive()
        except OSError as err:
            raise DhcpIoError(err) from err

        try:
            request = Packet.decode(data)
        except DhcpError as err:
            _log.warning("Decoding packet returned error: %s", err)
            continue

        reply = server.handle_request(server_options, request)
        if reply is None:
            continue

        try:
            payload = reply.encode()
        except DhcpError as err:
            raise DhcpIoError(err) from err

        try:
            await socket.send(_reply_address(remote, request.broadcast), payload)
        except OSError as err:
            raise DhcpIoError(err) from err