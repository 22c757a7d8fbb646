"""The BOOTP/DHCP packet and the settings a client reads from a server reply."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from ipaddress import IPv4Address
from typing import Iterator, Optional

from edge_net.dhcp_options import (
    AddressLike,
    CaptiveUrl,
    DhcpError,
    DomainNameServer,
    ErrorKind,
    IpAddressLeaseTime,
    MessageType,
    MessageTypeOption,
    Options,
    Router,
    ServerIdentifier,
    SubnetMask,
)

COOKIE = bytes((99, 130, 83, 99))
BOOT_REQUEST = 1
BOOT_REPLY = 2
SERVER_NAME_AND_FILE_NAME = 64 + 128
MIN_PACKET_SIZE = 272
UNSPECIFIED = IPv4Address("0.0.0.0")

_HEADER = struct.Struct("!BBBBIHH4s4s4s4s16s")
_OPTIONS_START = _HEADER.size + SERVER_NAME_AND_FILE_NAME + len(COOKIE)
_BROADCAST_FLAG = 128
_MAC_LEN = 6
_CHADDR_LEN = 16


def _address(value: AddressLike) -> IPv4Address:
    return value if isinstance(value, IPv4Address) else IPv4Address(value)


def _mac(value: bytes) -> bytes:
    mac = bytes(value)
    if len(mac) != _MAC_LEN:
        raise ValueError(f"a MAC address has {_MAC_LEN} bytes, got {len(mac)}")
    return mac


@dataclass(frozen=True)
class Packet:
    """A BOOTP/DHCP packet."""

    reply: bool
    hops: int
    xid: int
    secs: int
    broadcast: bool
    ciaddr: IPv4Address
    yiaddr: IPv4Address
    siaddr: IPv4Address
    giaddr: IPv4Address
    chaddr: bytes
    options: Options = field(default_factory=Options)

    def __post_init__(self) -> None:
        for name in ("ciaddr", "yiaddr", "siaddr", "giaddr"):
            object.__setattr__(self, name, _address(getattr(self, name)))
        chaddr = bytes(self.chaddr)
        if len(chaddr) != _CHADDR_LEN:
            raise ValueError(f"chaddr must have {_CHADDR_LEN} bytes, got {len(chaddr)}")
        object.__setattr__(self, "chaddr", chaddr)
        if not 0 <= self.hops <= 0xFF:
            raise ValueError(f"hops out of range: {self.hops}")
        if not 0 <= self.xid <= 0xFFFFFFFF:
            raise ValueError(f"xid out of range: {self.xid}")
        if not 0 <= self.secs <= 0xFFFF:
            raise ValueError(f"secs out of range: {self.secs}")

    @classmethod
    def new_request(
        cls,
        mac: bytes,
        xid: int,
        secs: int,
        our_ip: Optional[AddressLike],
        broadcast: bool,
        options: Options,
    ) -> "Packet":
        """A client request from ``mac``; ``our_ip`` fills ciaddr and yiaddr when given."""
        ip = _address(our_ip) if our_ip is not None else UNSPECIFIED
        return cls(
            reply=False,
            hops=0,
            xid=xid,
            secs=secs,
            broadcast=broadcast,
            ciaddr=ip,
            yiaddr=ip,
            siaddr=UNSPECIFIED,
            giaddr=UNSPECIFIED,
            chaddr=_mac(mac) + bytes(_CHADDR_LEN - _MAC_LEN),
            options=options,
        )

    def new_reply(self, ip: Optional[AddressLike], options: Options) -> "Packet":
        """A server reply to this packet, offering or confirming ``ip``."""
        ciaddr = UNSPECIFIED
        if ip is not None and self.options.message_type() is MessageType.REQUEST:
            ciaddr = self.ciaddr
        return Packet(
            reply=True,
            hops=0,
            xid=self.xid,
            secs=0,
            broadcast=self.broadcast,
            ciaddr=ciaddr,
            yiaddr=_address(ip) if ip is not None else UNSPECIFIED,
            siaddr=UNSPECIFIED,
            giaddr=self.giaddr,
            chaddr=self.chaddr,
            options=options,
        )

    def is_for_us(self, mac: bytes, xid: int) -> bool:
        """Whether this is a reply to transaction ``xid`` of the client with ``mac``."""
        return (
            self.chaddr[:_MAC_LEN] == bytes(mac)
            and self.chaddr[_MAC_LEN:] == bytes(_CHADDR_LEN - _MAC_LEN)
            and self.xid == xid
            and self.reply
        )

    @classmethod
    def decode(cls, data: bytes) -> "Packet":
        """Parse a packet from its wire form."""
        data = bytes(data)
        if len(data) < 3:
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)
        if data[2] != _MAC_LEN:
            raise DhcpError(ErrorKind.INVALID_HLEN)
        if len(data) < _OPTIONS_START:
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)

        (op, _htype, _hlen, hops, xid, secs, flags, ciaddr, yiaddr, siaddr, giaddr, chaddr) = (
            _HEADER.unpack_from(data)
        )
        if data[_OPTIONS_START - len(COOKIE) : _OPTIONS_START] != COOKIE:
            raise DhcpError(ErrorKind.MISSING_COOKIE)

        return cls(
            reply=op == BOOT_REPLY,
            hops=hops,
            xid=xid,
            secs=secs,
            broadcast=bool(flags & _BROADCAST_FLAG),
            ciaddr=IPv4Address(ciaddr),
            yiaddr=IPv4Address(yiaddr),
            siaddr=IPv4Address(siaddr),
            giaddr=IPv4Address(giaddr),
            chaddr=chaddr,
            options=Options.decode(data[_OPTIONS_START:]),
        )

    def encode(self) -> bytes:
        """The packet in wire form, padded to the BOOTP minimum size."""
        header = _HEADER.pack(
            BOOT_REPLY if self.reply else BOOT_REQUEST,
            1,
            _MAC_LEN,
            self.hops,
            self.xid,
            self.secs,
            _BROADCAST_FLAG if self.broadcast else 0,
            self.ciaddr.packed,
            self.yiaddr.packed,
            self.siaddr.packed,
            self.giaddr.packed,
            self.chaddr,
        )
        packet = header + bytes(SERVER_NAME_AND_FILE_NAME) + COOKIE + self.options.encode()
        return packet.ljust(MIN_PACKET_SIZE, b"\x00")


@dataclass(frozen=True)
class Settings:
    """Network settings carried by a server's offer or acknowledgement."""

    ip: IPv4Address
    server_ip: Optional[IPv4Address] = None
    lease_time_secs: Optional[int] = None
    gateway: Optional[IPv4Address] = None
    subnet: Optional[IPv4Address] = None
    dns1: Optional[IPv4Address] = None
    dns2: Optional[IPv4Address] = None
    captive_url: Optional[str] = None

    @classmethod
    def from_packet(cls, packet: Packet) -> "Settings":
        options = list(packet.options)

        def of(kind) -> Iterator:
            return (option for option in options if isinstance(option, kind))

        def nth_address(kind, index: int) -> Optional[IPv4Address]:
            return next(
                (o.addresses[index] for o in of(kind) if len(o.addresses) > index), None
            )

        return cls(
            ip=packet.yiaddr,
            server_ip=next((o.address for o in of(ServerIdentifier)), None),
            lease_time_secs=next((o.secs for o in of(IpAddressLeaseTime)), None),
            gateway=nth_address(Router, 0),
            subnet=next((o.mask for o in of(SubnetMask)), None),
            dns1=nth_address(DomainNameServer, 0),
            dns2=nth_address(DomainNameServer, 1),
            captive_url=next((o.url for o in of(CaptiveUrl)), None),
        )


__all__ = ["Packet", "Settings", "MessageTypeOption"]