"""DHCP option types and the option list carried in DHCP packets."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import Callable, ClassVar, Iterable, Iterator, Optional, Union

AddressLike = Union[IPv4Address, str, int, bytes]

# DHCP options
SUBNET_MASK = 1
ROUTER = 3
DOMAIN_NAME_SERVER = 6
HOST_NAME = 12

# DHCP extensions
REQUESTED_IP_ADDRESS = 50
IP_ADDRESS_LEASE_TIME = 51
DHCP_MESSAGE_TYPE = 53
SERVER_IDENTIFIER = 54
PARAMETER_REQUEST_LIST = 55
MESSAGE = 56
MAXIMUM_DHCP_MESSAGE_SIZE = 57
CLIENT_IDENTIFIER = 61
CAPTIVE_URL = 114

CODE_ROUTER = ROUTER
CODE_DNS = DOMAIN_NAME_SERVER
CODE_SUBNET = SUBNET_MASK
CODE_CAPTIVE_URL = CAPTIVE_URL

END = 255
PAD = 0


class ErrorKind(enum.Enum):
    """The kinds of failure that encoding or decoding DHCP data can report."""

    DATA_UNDERFLOW = "Data underflow"
    BUFFER_OVERFLOW = "Buffer overflow"
    INVALID_PACKET = "Invalid packet"
    INVALID_UTF8_STR = "Invalid Utf8 string"
    INVALID_MESSAGE_TYPE = "Invalid message type"
    MISSING_COOKIE = "Missing cookie"
    INVALID_HLEN = "Invalid hlen"


class DhcpError(Exception):
    """Raised when DHCP data cannot be encoded or decoded."""

    def __init__(self, kind: ErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind


class MessageType(enum.IntEnum):
    """DHCP message type (option 53), as defined by RFC 2131 and RFC 2132."""

    DISCOVER = 1
    OFFER = 2
    REQUEST = 3
    DECLINE = 4
    ACK = 5
    NAK = 6
    RELEASE = 7
    INFORM = 8

    def __str__(self) -> str:
        return f"DHCP{self.name}"


def _address(value: AddressLike) -> IPv4Address:
    return value if isinstance(value, IPv4Address) else IPv4Address(value)


def _exact(payload: bytes, size: int) -> bytes:
    if len(payload) < size:
        raise DhcpError(ErrorKind.DATA_UNDERFLOW)
    if len(payload) > size:
        raise DhcpError(ErrorKind.INVALID_PACKET)
    return payload


def _utf8(payload: bytes) -> str:
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DhcpError(ErrorKind.INVALID_UTF8_STR) from err


def _addresses(payload: bytes) -> tuple[IPv4Address, ...]:
    if len(payload) % 4:
        raise DhcpError(ErrorKind.INVALID_PACKET)
    return tuple(IPv4Address(payload[i : i + 4]) for i in range(0, len(payload), 4))


class DhcpOption(abc.ABC):
    """A single DHCP option: a code followed by its data."""

    code: ClassVar[int]

    @abc.abstractmethod
    def data(self) -> bytes:
        """The option's payload, without code and length."""

    def encode(self) -> bytes:
        """The option on the wire: code, length and payload."""
        payload = self.data()
        if len(payload) > 255:
            raise DhcpError(ErrorKind.BUFFER_OVERFLOW)
        return bytes((self.code, len(payload))) + payload

    @classmethod
    def decode(cls, data: bytes, offset: int = 0) -> tuple[Optional["DhcpOption"], int]:
        """Decode one option at ``offset``.

        Returns the option (``None`` for the end marker) and the offset just past it.
        """
        if offset >= len(data):
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)
        code = data[offset]
        if code == END:
            return None, offset + 1
        if offset + 1 >= len(data):
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)
        length = data[offset + 1]
        start = offset + 2
        end = start + length
        if end > len(data):
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)
        payload = bytes(data[start:end])
        parser = _PARSERS.get(code)
        option = parser(payload) if parser is not None else Unrecognized(code, payload)
        return option, end


@dataclass(frozen=True)
class MessageTypeOption(DhcpOption):
    """53: DHCP message type."""

    message_type: MessageType
    code: ClassVar[int] = DHCP_MESSAGE_TYPE

    def __post_init__(self) -> None:
        object.__setattr__(self, "message_type", MessageType(self.message_type))

    def data(self) -> bytes:
        return bytes((int(self.message_type),))

    @classmethod
    def _parse(cls, payload: bytes) -> "MessageTypeOption":
        value = _exact(payload, 1)[0]
        try:
            return cls(MessageType(value))
        except ValueError as err:
            raise DhcpError(ErrorKind.INVALID_MESSAGE_TYPE) from err


@dataclass(frozen=True)
class ServerIdentifier(DhcpOption):
    """54: server identifier."""

    address: IPv4Address
    code: ClassVar[int] = SERVER_IDENTIFIER

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", _address(self.address))

    def data(self) -> bytes:
        return self.address.packed

    @classmethod
    def _parse(cls, payload: bytes) -> "ServerIdentifier":
        return cls(IPv4Address(_exact(payload, 4)))


@dataclass(frozen=True)
class ParameterRequestList(DhcpOption):
    """55: codes of the options the client asks for."""

    codes: bytes
    code: ClassVar[int] = PARAMETER_REQUEST_LIST

    def __post_init__(self) -> None:
        object.__setattr__(self, "codes", bytes(self.codes))

    def data(self) -> bytes:
        return self.codes

    @classmethod
    def _parse(cls, payload: bytes) -> "ParameterRequestList":
        return cls(payload)


@dataclass(frozen=True)
class RequestedIpAddress(DhcpOption):
    """50: requested IP address."""

    address: IPv4Address
    code: ClassVar[int] = REQUESTED_IP_ADDRESS

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", _address(self.address))

    def data(self) -> bytes:
        return self.address.packed

    @classmethod
    def _parse(cls, payload: bytes) -> "RequestedIpAddress":
        return cls(IPv4Address(_exact(payload, 4)))


@dataclass(frozen=True)
class HostName(DhcpOption):
    """12: host name."""

    name: str
    code: ClassVar[int] = HOST_NAME

    def data(self) -> bytes:
        return self.name.encode("utf-8")

    @classmethod
    def _parse(cls, payload: bytes) -> "HostName":
        return cls(_utf8(payload))


@dataclass(frozen=True)
class Router(DhcpOption):
    """3: routers on the client's subnet."""

    addresses: tuple[IPv4Address, ...]
    code: ClassVar[int] = ROUTER

    def __post_init__(self) -> None:
        object.__setattr__(self, "addresses", tuple(_address(a) for a in self.addresses))

    def data(self) -> bytes:
        return b"".join(a.packed for a in self.addresses)

    @classmethod
    def _parse(cls, payload: bytes) -> "Router":
        return cls(_addresses(payload))


@dataclass(frozen=True)
class DomainNameServer(DhcpOption):
    """6: domain name servers."""

    addresses: tuple[IPv4Address, ...]
    code: ClassVar[int] = DOMAIN_NAME_SERVER

    def __post_init__(self) -> None:
        object.__setattr__(self, "addresses", tuple(_address(a) for a in self.addresses))

    def data(self) -> bytes:
        return b"".join(a.packed for a in self.addresses)

    @classmethod
    def _parse(cls, payload: bytes) -> "DomainNameServer":
        return cls(_addresses(payload))


@dataclass(frozen=True)
class IpAddressLeaseTime(DhcpOption):
    """51: lease time in seconds."""

    secs: int
    code: ClassVar[int] = IP_ADDRESS_LEASE_TIME

    def __post_init__(self) -> None:
        if not 0 <= self.secs <= 0xFFFFFFFF:
            raise ValueError(f"lease time out of range: {self.secs}")

    def data(self) -> bytes:
        return self.secs.to_bytes(4, "big")

    @classmethod
    def _parse(cls, payload: bytes) -> "IpAddressLeaseTime":
        return cls(int.from_bytes(_exact(payload, 4), "big"))


@dataclass(frozen=True)
class SubnetMask(DhcpOption):
    """1: subnet mask."""

    mask: IPv4Address
    code: ClassVar[int] = SUBNET_MASK

    def __post_init__(self) -> None:
        object.__setattr__(self, "mask", _address(self.mask))

    def data(self) -> bytes:
        return self.mask.packed

    @classmethod
    def _parse(cls, payload: bytes) -> "SubnetMask":
        return cls(IPv4Address(_exact(payload, 4)))


@dataclass(frozen=True)
class Message(DhcpOption):
    """56: text message."""

    text: str
    code: ClassVar[int] = MESSAGE

    def data(self) -> bytes:
        return self.text.encode("utf-8")

    @classmethod
    def _parse(cls, payload: bytes) -> "Message":
        return cls(_utf8(payload))


@dataclass(frozen=True)
class MaximumMessageSize(DhcpOption):
    """57: maximum DHCP message size."""

    size: int
    code: ClassVar[int] = MAXIMUM_DHCP_MESSAGE_SIZE

    def __post_init__(self) -> None:
        if not 0 <= self.size <= 0xFFFF:
            raise ValueError(f"message size out of range: {self.size}")

    def data(self) -> bytes:
        return self.size.to_bytes(2, "big")

    @classmethod
    def _parse(cls, payload: bytes) -> "MaximumMessageSize":
        return cls(int.from_bytes(_exact(payload, 2), "big"))


@dataclass(frozen=True)
class ClientIdentifier(DhcpOption):
    """61: client identifier."""

    identifier: bytes
    code: ClassVar[int] = CLIENT_IDENTIFIER

    def __post_init__(self) -> None:
        object.__setattr__(self, "identifier", bytes(self.identifier))

    def data(self) -> bytes:
        return self.identifier

    @classmethod
    def _parse(cls, payload: bytes) -> "ClientIdentifier":
        if len(payload) < 2:
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)
        return cls(payload)


@dataclass(frozen=True)
class CaptiveUrl(DhcpOption):
    """114: captive-portal URL."""

    url: str
    code: ClassVar[int] = CAPTIVE_URL

    def data(self) -> bytes:
        return self.url.encode("utf-8")

    @classmethod
    def _parse(cls, payload: bytes) -> "CaptiveUrl":
        return cls(_utf8(payload))


@dataclass(frozen=True)
class Unrecognized(DhcpOption):
    """Any option this module does not interpret."""

    code: int
    payload: bytes

    def __post_init__(self) -> None:
        if not 0 <= self.code <= 255:
            raise ValueError(f"option code out of range: {self.code}")
        object.__setattr__(self, "payload", bytes(self.payload))

    def data(self) -> bytes:
        return self.payload


_PARSERS: dict[int, Callable[[bytes], DhcpOption]] = {
    kind.code: kind._parse
    for kind in (
        MessageTypeOption,
        ServerIdentifier,
        ParameterRequestList,
        RequestedIpAddress,
        HostName,
        Router,
        DomainNameServer,
        IpAddressLeaseTime,
        SubnetMask,
        Message,
        MaximumMessageSize,
        ClientIdentifier,
        CaptiveUrl,
    )
}


class Options:
    """An ordered, immutable list of DHCP options."""

    CAPACITY = 8
    REQUEST_PARAMS = bytes((CODE_ROUTER, CODE_SUBNET, CODE_DNS))

    def __init__(self, options: Iterable[DhcpOption] = ()) -> None:
        self._options = tuple(options)

    def __iter__(self) -> Iterator[DhcpOption]:
        return iter(self._options)

    def __len__(self) -> int:
        return len(self._options)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Options):
            return NotImplemented
        return self._options == other._options

    def __hash__(self) -> int:
        return hash(self._options)

    def __repr__(self) -> str:
        return f"Options({list(self._options)!r})"

    @classmethod
    def discover(cls, requested_ip: Optional[AddressLike] = None) -> "Options":
        options: list[DhcpOption] = [MessageTypeOption(MessageType.DISCOVER)]
        if requested_ip is not None:
            options.append(RequestedIpAddress(_address(requested_ip)))
        return cls(options)

    @classmethod
    def request(cls, ip: AddressLike) -> "Options":
        return cls(
            [
                MessageTypeOption(MessageType.REQUEST),
                RequestedIpAddress(_address(ip)),
                ParameterRequestList(cls.REQUEST_PARAMS),
            ]
        )

    @classmethod
    def release(cls) -> "Options":
        return cls([MessageTypeOption(MessageType.RELEASE)])

    @classmethod
    def decline(cls) -> "Options":
        return cls([MessageTypeOption(MessageType.DECLINE)])

    def reply(
        self,
        mt: MessageType,
        server_ip: AddressLike,
        lease_duration_secs: int,
        gateways: Iterable[AddressLike] = (),
        subnet: Optional[AddressLike] = None,
        dns: Iterable[AddressLike] = (),
        captive_url: Optional[str] = None,
    ) -> "Options":
        """Build the options of a server reply to the request these options came with.

        Options the client asked for in its parameter request list are added in the
        order asked, as long as the server has a value for them and room remains.
        """
        mt = MessageType(mt)
        gateways = tuple(_address(g) for g in gateways)
        dns = tuple(_address(d) for d in dns)
        options: list[DhcpOption] = [
            MessageTypeOption(mt),
            ServerIdentifier(_address(server_ip)),
            IpAddressLeaseTime(lease_duration_secs),
        ]

        requested = self._find(ParameterRequestList)
        if mt is not MessageType.NAK and requested is not None:
            for code in requested.codes:
                if all(option.code != code for option in options):
                    option = _reply_option(code, gateways, subnet, dns, captive_url)
                    if option is not None:
                        options.append(option)
                if len(options) == self.CAPACITY:
                    break

        return Options(options)

    def message_type(self) -> Optional[MessageType]:
        option = self._find(MessageTypeOption)
        return option.message_type if option is not None else None

    def requested_ip(self) -> Optional[IPv4Address]:
        option = self._find(RequestedIpAddress)
        return option.address if option is not None else None

    @classmethod
    def decode(cls, data: bytes) -> "Options":
        """Decode options up to and including the end marker; later bytes are ignored."""
        options = []
        offset = 0
        while True:
            option, offset = DhcpOption.decode(data, offset)
            if option is None:
                return cls(options)
            options.append(option)

    def encode(self) -> bytes:
        """Encode all options followed by the end marker."""
        return b"".join(option.encode() for option in self._options) + bytes((END,))

    def _find(self, kind):
        return next((option for option in self._options if isinstance(option, kind)), None)


def _reply_option(
    code: int,
    gateways: tuple[IPv4Address, ...],
    subnet: Optional[AddressLike],
    dns: tuple[IPv4Address, ...],
    captive_url: Optional[str],
) -> Optional[DhcpOption]:
    if code == CODE_ROUTER:
        return Router(gateways) if gateways else None
    if code == CODE_DNS:
        return DomainNameServer(dns) if dns else None
    if code == CODE_SUBNET:
        return SubnetMask(_address(subnet)) if subnet is not None else None
    if code == CODE_CAPTIVE_URL:
        return CaptiveUrl(captive_url) if captive_url is not None else None
    return None