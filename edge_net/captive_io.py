"""Serving captive-portal DNS replies over UDP."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Union

from edge_net.captive_dns import DnsInvalidMessageError, reply
from edge_net.dhcp_io import AsyncioUdpSocket, UdpSocket

_log = logging.getLogger(__name__)

PORT = 53
DEFAULT_SOCKET = ("::", PORT)


async def run(socket: UdpSocket, ip, ttl: Union[timedelta, int, float]) -> None:
    """Answer DNS requests arriving on ``socket`` until the socket fails.

    Malformed requests are skipped; a reply that does not fit raises
    ``DnsShortBufError``.
    """
    while True:
        _log.debug("Waiting for data")
        request, remote = await socket.receive()
        _log.debug("Received %d bytes from %s", len(request), remote)

        try:
            response = reply(request, ip, ttl)
        except DnsInvalidMessageError:
            _log.warning("Got invalid message from %s, skipping", remote)
            continue

        await socket.send(remote, response)
        _log.debug("Sent %d bytes to %s", len(response), remote)


async def serve(local_addr, ip, ttl: Union[timedelta, int, float]) -> None:
    """Bind a UDP socket to ``local_addr`` and answer DNS requests on it."""
    async with await AsyncioUdpSocket.bind(local_addr) as socket:
        await run(socket, ip, ttl)