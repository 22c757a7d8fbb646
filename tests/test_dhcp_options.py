from ipaddress import IPv4Address

import pytest

from edge_net.dhcp_options import (
    CaptiveUrl,
    ClientIdentifier,
    DhcpError,
    DhcpOption,
    DomainNameServer,
    ErrorKind,
    HostName,
    IpAddressLeaseTime,
    MaximumMessageSize,
    Message,
    MessageType,
    MessageTypeOption,
    Options,
    ParameterRequestList,
    RequestedIpAddress,
    Router,
    ServerIdentifier,
    SubnetMask,
    Unrecognized,
)

SERVER = IPv4Address("192.168.1.1")
CLIENT = IPv4Address("192.168.1.50")


def test_message_type_display():
    assert str(Options.discover().message_type()) == "DHCPDISCOVER"
    nak = Options.request(CLIENT).reply(MessageType.NAK, SERVER, 60, [SERVER])
    assert str(nak.message_type()) == "DHCPNAK"
    inform = Options([MessageTypeOption(MessageType.INFORM)])
    assert str(inform.message_type()) == "DHCPINFORM"


def test_error_display():
    assert str(DhcpError(ErrorKind.INVALID_HLEN)) == "Invalid hlen"
    assert DhcpError(ErrorKind.MISSING_COOKIE).kind is ErrorKind.MISSING_COOKIE


def test_message_type_wire_bytes():
    assert MessageTypeOption(MessageType.DISCOVER).encode() == bytes([53, 1, 1])


def test_server_identifier_wire_bytes():
    assert ServerIdentifier(SERVER).encode() == bytes([54, 4]) + SERVER.packed


@pytest.mark.parametrize(
    "option",
    [
        MessageTypeOption(MessageType.ACK),
        ServerIdentifier(SERVER),
        ParameterRequestList(bytes([1, 3, 6])),
        RequestedIpAddress(CLIENT),
        HostName("device"),
        Router([SERVER, CLIENT]),
        DomainNameServer([SERVER]),
        IpAddressLeaseTime(7200),
        SubnetMask("255.255.255.0"),
        Message("hello"),
        MaximumMessageSize(1500),
        ClientIdentifier(b"\x01\x02\x03"),
        CaptiveUrl("http://portal.example.com/"),
        Unrecognized(200, b"xyz"),
    ],
)
def test_option_round_trip(option):
    encoded = option.encode()
    decoded, offset = DhcpOption.decode(encoded, 0)
    assert decoded == option
    assert offset == len(encoded)


def test_decode_end_marker():
    assert DhcpOption.decode(bytes([255]), 0) == (None, 1)


def test_decode_at_offset():
    data = b"\x00\x00" + HostName("h").encode()
    option, offset = DhcpOption.decode(data, 2)
    assert option == HostName("h")
    assert offset == len(data)


def test_decode_truncated_payload():
    with pytest.raises(DhcpError) as err:
        DhcpOption.decode(bytes([54, 4, 1, 2]), 0)
    assert err.value.kind is ErrorKind.DATA_UNDERFLOW


def test_decode_empty():
    with pytest.raises(DhcpError) as err:
        DhcpOption.decode(b"", 0)
    assert err.value.kind is ErrorKind.DATA_UNDERFLOW


def test_decode_invalid_message_type():
    with pytest.raises(DhcpError) as err:
        DhcpOption.decode(bytes([53, 1, 9]), 0)
    assert err.value.kind is ErrorKind.INVALID_MESSAGE_TYPE


def test_decode_invalid_utf8():
    with pytest.raises(DhcpError) as err:
        DhcpOption.decode(bytes([12, 2, 0xFF, 0xFE]), 0)
    assert err.value.kind is ErrorKind.INVALID_UTF8_STR


def test_decode_short_client_identifier():
    with pytest.raises(DhcpError) as err:
        DhcpOption.decode(bytes([61, 1, 7]), 0)
    assert err.value.kind is ErrorKind.DATA_UNDERFLOW


def test_decode_unknown_code():
    option, _ = DhcpOption.decode(bytes([250, 2, 7, 8]), 0)
    assert option == Unrecognized(250, bytes([7, 8]))
    assert option.code == 250


def test_encode_too_long():
    with pytest.raises(DhcpError) as err:
        Message("a" * 256).encode()
    assert err.value.kind is ErrorKind.BUFFER_OVERFLOW


def test_discover_options():
    assert list(Options.discover()) == [MessageTypeOption(MessageType.DISCOVER)]
    options = Options.discover(CLIENT)
    assert options.message_type() is MessageType.DISCOVER
    assert options.requested_ip() == CLIENT
    assert len(options) == 2


def test_request_options():
    options = Options.request(CLIENT)
    assert options.message_type() is MessageType.REQUEST
    assert options.requested_ip() == CLIENT
    assert ParameterRequestList(Options.REQUEST_PARAMS) in list(options)


def test_release_and_decline():
    assert Options.release().message_type() is MessageType.RELEASE
    assert Options.decline().message_type() is MessageType.DECLINE
    assert Options.release().requested_ip() is None


def test_reply_follows_requested_order():
    request = Options.request(CLIENT)
    reply = request.reply(
        MessageType.ACK, SERVER, 7200, [SERVER], "255.255.255.0", [SERVER, CLIENT], None
    )
    assert list(reply) == [
        MessageTypeOption(MessageType.ACK),
        ServerIdentifier(SERVER),
        IpAddressLeaseTime(7200),
        Router([SERVER]),
        SubnetMask("255.255.255.0"),
        DomainNameServer([SERVER, CLIENT]),
    ]


def test_reply_nak_has_no_extras():
    reply = Options.request(CLIENT).reply(
        MessageType.NAK, SERVER, 7200, [SERVER], "255.255.255.0", [SERVER]
    )
    assert len(reply) == 3
    assert reply.message_type() is MessageType.NAK


def test_reply_skips_missing_values_and_duplicates():
    request = Options([ParameterRequestList(bytes([3, 51, 53, 6, 114, 1]))])
    reply = request.reply(MessageType.OFFER, SERVER, 60, [], None, [], "http://a.example.com/")
    codes = [option.code for option in reply]
    assert codes == [53, 54, 51, 114]


def test_reply_without_request_list():
    reply = Options.discover().reply(MessageType.OFFER, SERVER, 60, [SERVER])
    assert len(reply) == 3


def test_reply_respects_capacity():
    request = Options([ParameterRequestList(bytes([3, 6, 1, 114] * 3))])
    reply = request.reply(
        MessageType.ACK, SERVER, 60, [SERVER], "255.255.255.0", [SERVER], "http://a.example.com/"
    )
    assert len(reply) <= Options.CAPACITY
    codes = [option.code for option in reply]
    assert len(codes) == len(set(codes))


def test_options_round_trip():
    options = Options(
        [
            MessageTypeOption(MessageType.OFFER),
            ServerIdentifier(SERVER),
            Router([SERVER]),
            HostName("box"),
        ]
    )
    encoded = options.encode()
    assert encoded[-1] == 255
    assert Options.decode(encoded) == options


def test_options_decode_ignores_after_end():
    data = Options.release().encode() + bytes([12, 1])
    assert Options.decode(data) == Options.release()


def test_options_decode_missing_end():
    data = MessageTypeOption(MessageType.DISCOVER).encode()
    with pytest.raises(DhcpError) as err:
        Options.decode(data)
    assert err.value.kind is ErrorKind.DATA_UNDERFLOW


def test_router_bad_length():
    with pytest.raises(DhcpError) as err:
        DhcpOption.decode(bytes([3, 3, 1, 2, 3]), 0)
    assert err.value.kind is ErrorKind.INVALID_PACKET