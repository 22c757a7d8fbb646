"""A transport-agnostic DHCP client that builds requests and checks replies."""

from __future__ import annotations

import random
from typing import Iterable, Optional

from edge_net.dhcp_options import AddressLike, MessageType, Options
from edge_net.dhcp_packet import Packet


class Client:
    """Builds BOOTP requests and recognises the replies meant for it.

    ``rng`` is any object with a ``getrandbits`` method, such as ``random.Random``;
    it supplies transaction ids.
    """

    def __init__(self, mac: bytes, rng=None) -> None:
        mac = bytes(mac)
        if len(mac) != 6:
            raise ValueError(f"a MAC address has 6 bytes, got {len(mac)}")
        self.mac = mac
        self.rng = rng if rng is not None else random.Random()

    def discover(self, secs: int = 0, ip: Optional[AddressLike] = None) -> tuple[Packet, int]:
        return self.bootp_request(secs, None, True, Options.discover(ip))

    def request(self, secs: int, ip: AddressLike, broadcast: bool) -> tuple[Packet, int]:
        return self.bootp_request(secs, None, broadcast, Options.request(ip))

    def release(self, secs: int, ip: AddressLike) -> Packet:
        return self.bootp_request(secs, ip, False, Options.release())[0]

    def decline(self, secs: int, ip: AddressLike) -> Packet:
        return self.bootp_request(secs, ip, False, Options.decline())[0]

    def is_offer(self, reply: Packet, xid: int) -> bool:
        return self.is_bootp_reply_for_us(reply, xid, (MessageType.OFFER,))

    def is_ack(self, reply: Packet, xid: int) -> bool:
        return self.is_bootp_reply_for_us(reply, xid, (MessageType.ACK,))

    def is_nak(self, reply: Packet, xid: int) -> bool:
        return self.is_bootp_reply_for_us(reply, xid, (MessageType.NAK,))

    def bootp_request(
        self,
        secs: int,
        ip: Optional[AddressLike],
        broadcast: bool,
        options: Options,
    ) -> tuple[Packet, int]:
        """A request with a fresh transaction id, returned together with that id."""
        xid = self.rng.getrandbits(32)
        return Packet.new_request(self.mac, xid, secs, ip, broadcast, options), xid

    def is_bootp_reply_for_us(
        self,
        reply: Packet,
        xid: int,
        expected_message_types: Optional[Iterable[MessageType]] = None,
    ) -> bool:
        """Whether ``reply`` answers transaction ``xid`` with one of the expected types."""
        if not (reply.reply and reply.is_for_us(self.mac, xid)):
            return False
        if expected_message_types is None:
            return True
        mt = reply.options.message_type()
        return mt is not None and any(mt == expected for expected in expected_message_types)