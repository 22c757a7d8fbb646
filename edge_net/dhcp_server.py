"""A transport-agnostic DHCP server with a small in-memory lease table."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import Callable, Iterable, Optional

from edge_net.dhcp_options import (
    AddressLike,
    MessageType,
    Options,
    ServerIdentifier,
)
from edge_net.dhcp_packet import UNSPECIFIED, Packet

_log = logging.getLogger(__name__)

DEFAULT_LEASE_DURATION_SECS = 7200
DEFAULT_SUBNET = IPv4Address("255.255.255.0")
DEFAULT_CAPACITY = 64
_RANGE_START_OCTET = 50
_RANGE_END_OCTET = 200


def _address(value: AddressLike) -> IPv4Address:
    return value if isinstance(value, IPv4Address) else IPv4Address(value)


def _monotonic_secs() -> int:
    return int(time.monotonic())


@dataclass(frozen=True)
class Lease:
    """An address handed out to the client with hardware address ``mac``."""

    mac: bytes
    expires: int


class ActionKind(enum.Enum):
    """What a client request asks the server to do."""

    DISCOVER = "discover"
    REQUEST = "request"
    RELEASE = "release"
    DECLINE = "decline"


@dataclass(frozen=True)
class Action:
    """A request reduced to what the server must act on.

    ``ip`` is ``None`` only for a discover that names no address.
    """

    kind: ActionKind
    ip: Optional[IPv4Address]
    mac: bytes


@dataclass
class ServerOptions:
    """The configuration a server hands out to its clients."""

    ip: IPv4Address
    gateways: tuple[IPv4Address, ...] = ()
    subnet: Optional[IPv4Address] = DEFAULT_SUBNET
    dns: tuple[IPv4Address, ...] = ()
    captive_url: Optional[str] = None
    lease_duration_secs: int = DEFAULT_LEASE_DURATION_SECS

    def __post_init__(self) -> None:
        self.ip = _address(self.ip)
        self.gateways = tuple(_address(g) for g in self.gateways)
        self.dns = tuple(_address(d) for d in self.dns)
        if self.subnet is not None:
            self.subnet = _address(self.subnet)

    @classmethod
    def create(cls, ip: AddressLike, with_gateway: bool = False) -> "ServerOptions":
        """Options for a server at ``ip``, which is also the gateway if ``with_gateway``."""
        ip = _address(ip)
        return cls(ip=ip, gateways=(ip,) if with_gateway else ())

    def process(self, request: Packet) -> Optional[Action]:
        """Work out what ``request`` asks for, or ``None`` if it is to be ignored."""
        if request.reply:
            return None

        message_type = request.options.message_type()
        if message_type is None:
            _log.warning("Ignoring DHCP request, no message type found: %r", request)
            return None

        server_identifier = next(
            (o.address for o in request.options if isinstance(o, ServerIdentifier)), None
        )
        if server_identifier is not None and server_identifier != self.ip:
            _log.warning(
                "Ignoring %s request, not addressed to this server: %r", message_type, request
            )
            return None

        _log.debug("Received %s request: %r", message_type, request)

        if message_type == MessageType.DISCOVER:
            return Action(ActionKind.DISCOVER, request.options.requested_ip(), request.chaddr)
        if message_type == MessageType.REQUEST:
            ip = request.options.requested_ip()
            if ip is None and request.ciaddr != UNSPECIFIED:
                ip = request.ciaddr
            if ip is None:
                return None
            return Action(ActionKind.REQUEST, ip, request.chaddr)
        if server_identifier == self.ip:
            if message_type == MessageType.RELEASE:
                return Action(ActionKind.RELEASE, request.yiaddr, request.chaddr)
            if message_type == MessageType.DECLINE:
                return Action(ActionKind.DECLINE, request.yiaddr, request.chaddr)
        return None

    def offer(self, request: Packet, yiaddr: AddressLike) -> Packet:
        """An offer of ``yiaddr`` in reply to ``request``."""
        return self._reply(request, MessageType.OFFER, _address(yiaddr))

    def ack_nak(self, request: Packet, ip: Optional[AddressLike]) -> Packet:
        """An acknowledgement of ``ip``, or a refusal when ``ip`` is ``None``."""
        if ip is None:
            return self._reply(request, MessageType.NAK, None)
        return self._reply(request, MessageType.ACK, _address(ip))

    def _reply(
        self, request: Packet, message_type: MessageType, ip: Optional[IPv4Address]
    ) -> Packet:
        reply = request.new_reply(
            ip,
            request.options.reply(
                message_type,
                self.ip,
                self.lease_duration_secs,
                self.gateways,
                self.subnet,
                self.dns,
                self.captive_url,
            ),
        )
        _log.debug("Sending %s reply: %r", message_type, reply)
        return reply


class Server:
    """A DHCP server handing out addresses .50 to .200 of the server's /24.

    ``now`` returns the current time in seconds; ``capacity`` bounds the number of
    leases held at once.
    """

    def __init__(
        self,
        ip: AddressLike,
        now: Optional[Callable[[], int]] = None,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        if capacity < 0:
            raise ValueError(f"capacity must not be negative: {capacity}")
        prefix = _address(ip).packed[:3]
        self.now: Callable[[], int] = now if now is not None else _monotonic_secs
        self.capacity = capacity
        self.range_start = IPv4Address(prefix + bytes((_RANGE_START_OCTET,)))
        self.range_end = IPv4Address(prefix + bytes((_RANGE_END_OCTET,)))
        self.leases: dict[IPv4Address, Lease] = {}

    def handle_request(
        self, server_options: ServerOptions, request: Packet
    ) -> Optional[Packet]:
        """Update the leases for ``request`` and return the reply to send, if any."""
        action = server_options.process(request)
        if action is None:
            return None

        if action.kind is ActionKind.DISCOVER:
            ip = None
            if action.ip is not None and self._is_available(action.mac, action.ip):
                ip = action.ip
            if ip is None:
                ip = self._current_lease(action.mac)
            if ip is None:
                ip = self._available()
            return server_options.offer(request, ip) if ip is not None else None

        if action.kind is ActionKind.REQUEST:
            now = self.now()
            granted = self._is_available(action.mac, action.ip) and self._add_lease(
                action.ip, request.chaddr, now + server_options.lease_duration_secs
            )
            return server_options.ack_nak(request, action.ip if granted else None)

        self._remove_lease(action.mac)
        return None

    def _in_range(self, addr: IPv4Address) -> bool:
        return self.range_start <= addr <= self.range_end

    def _is_available(self, mac: bytes, addr: IPv4Address) -> bool:
        if not self._in_range(addr):
            return False
        lease = self.leases.get(addr)
        return lease is None or lease.mac == mac or self.now() > lease.expires

    def _available(self) -> Optional[IPv4Address]:
        for pos in range(int(self.range_start), int(self.range_end) + 1):
            addr = IPv4Address(pos)
            if addr not in self.leases:
                return addr

        expired = next(
            (addr for addr, lease in self.leases.items() if self.now() > lease.expires), None
        )
        if expired is not None:
            del self.leases[expired]
        return expired

    def _current_lease(self, mac: bytes) -> Optional[IPv4Address]:
        return next((addr for addr, lease in self.leases.items() if lease.mac == mac), None)

    def _add_lease(self, addr: IPv4Address, mac: bytes, expires: int) -> bool:
        self._remove_lease(mac)
        if addr not in self.leases and len(self.leases) >= self.capacity:
            return False
        self.leases[addr] = Lease(mac=bytes(mac), expires=expires)
        return True

    def _remove_lease(self, mac: bytes) -> bool:
        addr = self._current_lease(mac)
        if addr is None:
            return False
        del self.leases[addr]
        return True

    def lease_addresses(self) -> Iterable[IPv4Address]:
        """The addresses currently leased."""
        return tuple(self.leases)