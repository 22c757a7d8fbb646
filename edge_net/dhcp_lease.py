"""Acquiring, renewing and releasing a DHCP lease over a UDP socket."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import Optional

from edge_net.dhcp_client import Client
from edge_net.dhcp_io import DEFAULT_SERVER_PORT, DhcpIoError, UdpSocket
from edge_net.dhcp_options import DhcpError, ErrorKind
from edge_net.dhcp_packet import Packet, Settings

_log = logging.getLogger(__name__)

DEFAULT_LEASE_SECS = 7200
_TIMEOUT_SECS = 3.0
_RETRIES = 3
_CHECK_INTERVAL_SECS = 60.0
_BROADCAST = "255.255.255.255"
_MAX_SECS = 0xFFFF


@dataclass(frozen=True)
class NetworkInfo:
    """Additional network settings a DHCP server may hand out with a lease."""

    gateway: Optional[IPv4Address] = None
    subnet: Optional[IPv4Address] = None
    dns1: Optional[IPv4Address] = None
    dns2: Optional[IPv4Address] = None
    captive_url: Optional[str] = None


@dataclass
class DhcpLease:
    """An IP address leased from a DHCP server.

    ``duration`` is in seconds; ``acquired`` is a ``time.monotonic()`` timestamp.
    """

    ip: IPv4Address
    server_ip: IPv4Address
    duration: float
    acquired: float

    @classmethod
    async def acquire(cls, client: Client, socket: UdpSocket) -> tuple["DhcpLease", NetworkInfo]:
        """Discover a server and lease an address from it.

        The socket must be able to send and receive broadcast datagrams.
        """
        while True:
            offer = await _discover(client, socket, _TIMEOUT_SECS)
            server_ip = _server_ip(offer)
            now = time.monotonic()

            settings = await _request(
                client, socket, server_ip, offer.ip, True, _TIMEOUT_SECS, _RETRIES
            )
            if settings is not None:
                lease = cls(
                    ip=settings.ip,
                    server_ip=_server_ip(settings),
                    duration=float(
                        settings.lease_time_secs
                        if settings.lease_time_secs is not None
                        else DEFAULT_LEASE_SECS
                    ),
                    acquired=now,
                )
                info = NetworkInfo(
                    gateway=settings.gateway,
                    subnet=settings.subnet,
                    dns1=settings.dns1,
                    dns2=settings.dns2,
                    captive_url=settings.captive_url,
                )
                return lease, info

    async def keep(self, client: Client, socket: UdpSocket) -> None:
        """Renew the lease whenever a third of it has passed; return once renewal fails."""
        while True:
            if time.monotonic() - self.acquired >= self.duration / 3:
                if not await self.renew(client, socket):
                    return
            else:
                await asyncio.sleep(_CHECK_INTERVAL_SECS)

    async def renew(self, client: Client, socket: UdpSocket) -> bool:
        """Ask the leasing server to extend the lease; return whether it agreed."""
        _log.info("Renewing DHCP lease...")
        now = time.monotonic()
        settings = await _request(
            client, socket, self.server_ip, self.ip, False, _TIMEOUT_SECS, _RETRIES
        )
        if settings is None:
            return False
        if settings.lease_time_secs is not None:
            self.duration = float(settings.lease_time_secs)
        self.acquired = now
        return True

    async def release(self, client: Client, socket: UdpSocket) -> None:
        """Tell the leasing server that the address is no longer used."""
        request = client.release(0, self.ip)
        await _send(socket, (str(self.server_ip), DEFAULT_SERVER_PORT), request)


def _server_ip(settings: Settings) -> IPv4Address:
    if settings.server_ip is None:
        raise DhcpIoError(DhcpError(ErrorKind.INVALID_PACKET))
    return settings.server_ip


def _elapsed_secs(start: float) -> int:
    return min(int(time.monotonic() - start), _MAX_SECS)


async def _send(socket: UdpSocket, remote, packet: Packet) -> None:
    try:
        payload = packet.encode()
    except DhcpError as err:
        raise DhcpIoError(err) from err
    try:
        await socket.send(remote, payload)
    except OSError as err:
        raise DhcpIoError(err) from err


async def _receive(socket: UdpSocket, timeout: float) -> Optional[Packet]:
    try:
        data, _remote = await asyncio.wait_for(socket.receive(), timeout)
    except asyncio.TimeoutError:
        return None
    except OSError as err:
        raise DhcpIoError(err) from err
    try:
        return Packet.decode(data)
    except DhcpError as err:
        raise DhcpIoError(err) from err


async def _discover(client: Client, socket: UdpSocket, timeout: float) -> Settings:
    _log.info("Discovering DHCP servers...")
    start = time.monotonic()

    while True:
        request, xid = client.discover(_elapsed_secs(start), None)
        await _send(socket, (_BROADCAST, DEFAULT_SERVER_PORT), request)

        reply = await _receive(socket, timeout)
        if reply is not None and client.is_offer(reply, xid):
            settings = Settings.from_packet(reply)
            _log.info(
                "IP %s offered by DHCP server %s", settings.ip, _server_ip(settings)
            )
            return settings

        _log.info("No DHCP offers received, retrying...")


async def _request(
    client: Client,
    socket: UdpSocket,
    server_ip: IPv4Address,
    ip: IPv4Address,
    broadcast: bool,
    timeout: float,
    retries: int,
) -> Optional[Settings]:
    for _ in range(retries):
        _log.info("Requesting IP %s from DHCP server %s", ip, server_ip)
        start = time.monotonic()
        request, xid = client.request(_elapsed_secs(start), ip, broadcast)

        destination = _BROADCAST if broadcast else str(server_ip)
        await _send(socket, (destination, DEFAULT_SERVER_PORT), request)

        reply = await _receive(socket, timeout)
        if reply is None:
            continue
        if client.is_ack(reply, xid):
            _log.info("IP %s leased successfully", ip)
            return Settings.from_packet(reply)
        if client.is_nak(reply, xid):
            _log.info("IP %s not acknowledged", ip)
            return None

    _log.warning("IP request was not replied")
    return None