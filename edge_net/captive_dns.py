"""A DNS responder that answers every A query with one fixed address."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from datetime import timedelta
from ipaddress import IPv4Address
from typing import Union

_log = logging.getLogger(__name__)

HEADER_LEN = 12
DEFAULT_MAX_SIZE = 1500
OPCODE_QUERY = 0
RCODE_NOERROR = 0
RCODE_NOTIMP = 4
TYPE_A = 1
CLASS_IN = 1

_HEADER = struct.Struct("!HHHHHH")
_QR = 0x8000
_RD = 0x0100
_MAX_TTL = 0xFFFFFFFF
_MAX_NAME_LEN = 255
_POINTER = 0xC0


class DnsError(Exception):
    """A DNS reply could not be produced."""


class DnsShortBufError(DnsError):
    """The reply does not fit into the space allowed for it."""

    def __init__(self) -> None:
        super().__init__("ShortBuf")


class DnsInvalidMessageError(DnsError):
    """The request is not a well-formed DNS message."""

    def __init__(self) -> None:
        super().__init__("InvalidMessage")


@dataclass(frozen=True)
class _Question:
    name: bytes
    qtype: int
    qclass: int

    def encode(self) -> bytes:
        return self.name + struct.pack("!HH", self.qtype, self.qclass)


def _parse_name(message: bytes, offset: int) -> tuple[bytes, int]:
    """Read a possibly compressed name; return it uncompressed and the offset after it."""
    wire = bytearray()
    pos = offset
    lowest = offset
    end = None
    while True:
        if pos >= len(message):
            raise DnsInvalidMessageError()
        length = message[pos]
        if length & _POINTER == _POINTER:
            if pos + 1 >= len(message):
                raise DnsInvalidMessageError()
            target = ((length & 0x3F) << 8) | message[pos + 1]
            if target >= lowest:
                raise DnsInvalidMessageError()
            if end is None:
                end = pos + 2
            lowest = pos = target
            continue
        if length & _POINTER:
            raise DnsInvalidMessageError()
        if length == 0:
            wire.append(0)
            if len(wire) > _MAX_NAME_LEN:
                raise DnsInvalidMessageError()
            return bytes(wire), end if end is not None else pos + 1
        label = message[pos + 1 : pos + 1 + length]
        if len(label) < length:
            raise DnsInvalidMessageError()
        wire.append(length)
        wire += label
        if len(wire) > _MAX_NAME_LEN:
            raise DnsInvalidMessageError()
        pos += 1 + length


def _questions(message: bytes, count: int) -> list[_Question]:
    questions = []
    offset = HEADER_LEN
    for _ in range(count):
        name, offset = _parse_name(message, offset)
        if offset + 4 > len(message):
            raise DnsInvalidMessageError()
        qtype, qclass = struct.unpack_from("!HH", message, offset)
        offset += 4
        questions.append(_Question(name, qtype, qclass))
    return questions


def _ttl_secs(ttl: Union[timedelta, int, float]) -> int:
    secs = ttl.total_seconds() if isinstance(ttl, timedelta) else ttl
    if secs < 0:
        raise ValueError(f"TTL must not be negative: {ttl}")
    return min(int(secs), _MAX_TTL)


def _ip_octets(ip) -> bytes:
    if isinstance(ip, (bytes, bytearray)):
        return IPv4Address(bytes(ip)).packed
    return IPv4Address(ip).packed


def reply(
    request: bytes,
    ip,
    ttl: Union[timedelta, int, float],
    max_size: int = DEFAULT_MAX_SIZE,
) -> bytes:
    """The reply to a DNS ``request``.

    Queries get every question of type A and class IN answered with ``ip``; other
    questions are echoed without an answer. Other opcodes get a NOTIMP reply.
    ``ttl`` is a ``timedelta`` or a number of seconds.
    """
    request = bytes(request)
    if len(request) < HEADER_LEN:
        raise DnsInvalidMessageError()
    ident, flags, qdcount = struct.unpack_from("!HHH", request)
    opcode = (flags >> 11) & 0xF
    rd = flags & _RD
    _log.debug("Processing message with id %d, opcode %d", ident, opcode)

    if max_size < HEADER_LEN:
        raise DnsShortBufError()

    if opcode != OPCODE_QUERY:
        _log.debug("Message is not of type Query, replying with NotImp")
        return _HEADER.pack(ident, (opcode << 11) | rd | RCODE_NOTIMP, 0, 0, 0, 0)

    questions = _questions(request, qdcount)
    address = _ip_octets(ip)
    ttl_secs = _ttl_secs(ttl)

    answers = []
    for question in questions:
        if question.qtype == TYPE_A and question.qclass == CLASS_IN:
            _log.debug("Answering %r", question)
            answers.append(
                question.name + struct.pack("!HHIH", TYPE_A, CLASS_IN, ttl_secs, 4) + address
            )
        else:
            _log.debug("Question %r is not of type A, not answering", question)

    header = _HEADER.pack(
        ident, _QR | (opcode << 11) | rd | RCODE_NOERROR, len(questions), len(answers), 0, 0
    )
    message = header + b"".join(q.encode() for q in questions) + b"".join(answers)
    if len(message) > max_size:
        raise DnsShortBufError()
    return message