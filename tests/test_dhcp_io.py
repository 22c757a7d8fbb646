import asyncio
import random
from ipaddress import IPv4Address

import pytest

from edge_net.dhcp_client import Client
from edge_net.dhcp_options import DhcpError, ErrorKind
from edge_net.dhcp_packet import Packet
from edge_net.dhcp_io import AsyncioUdpSocket, DhcpIoError, run_server
from edge_net.dhcp_server import Server, ServerOptions

SERVER_IP = IPv4Address("192.168.1.1")
MAC = bytes.fromhex("020000000001")


class FakeSocket:
    def __init__(self, incoming, fail_send=False):
        self.incoming = list(incoming)
        self.sent = []
        self.fail_send = fail_send

    async def receive(self):
        if not self.incoming:
            raise ConnectionError("no more datagrams")
        return self.incoming.pop(0)

    async def send(self, remote, data):
        if self.fail_send:
            raise OSError("send failed")
        self.sent.append((remote, bytes(data)))


def make_setup():
    return Server(SERVER_IP, now=lambda: 1000), ServerOptions.create(SERVER_IP, True)


def test_error_messages():
    io_error = DhcpIoError(OSError("boom"))
    assert str(io_error) == "IO error: boom"
    assert not io_error.is_format
    format_error = DhcpIoError(DhcpError(ErrorKind.BUFFER_OVERFLOW))
    assert str(format_error) == "Format error: Buffer overflow"
    assert format_error.is_format


@pytest.mark.asyncio
async def test_discover_is_answered_by_broadcast():
    server, opts = make_setup()
    client = Client(MAC, random.Random(1))
    discover, xid = client.discover()
    socket = FakeSocket([(discover.encode(), ("0.0.0.0", 68))])

    with pytest.raises(DhcpIoError) as info:
        await run_server(server, opts, socket)

    assert isinstance(info.value.error, ConnectionError)
    assert len(socket.sent) == 1
    remote, data = socket.sent[0]
    assert remote == ("255.255.255.255", 68)
    assert client.is_offer(Packet.decode(data), xid)


@pytest.mark.asyncio
async def test_unicast_request_is_answered_to_sender():
    server, opts = make_setup()
    client = Client(MAC, random.Random(2))
    wanted = IPv4Address("192.168.1.77")
    request, xid = client.request(0, wanted, False)
    sender = ("192.168.1.77", 68)
    socket = FakeSocket([(request.encode(), sender)])

    with pytest.raises(DhcpIoError):
        await run_server(server, opts, socket)

    remote, data = socket.sent[0]
    assert remote == sender
    reply = Packet.decode(data)
    assert client.is_ack(reply, xid)
    assert reply.yiaddr == wanted
    assert wanted in server.leases


@pytest.mark.asyncio
async def test_unspecified_sender_gets_broadcast_even_without_flag():
    server, opts = make_setup()
    client = Client(MAC, random.Random(3))
    request, xid = client.request(0, "192.168.1.80", False)
    socket = FakeSocket([(request.encode(), ("0.0.0.0", 68))])

    with pytest.raises(DhcpIoError):
        await run_server(server, opts, socket)

    assert socket.sent[0][0] == ("255.255.255.255", 68)


@pytest.mark.asyncio
async def test_garbage_is_skipped():
    server, opts = make_setup()
    client = Client(MAC, random.Random(4))
    discover, xid = client.discover()
    socket = FakeSocket(
        [(b"\x01\x01\x05garbage", ("10.0.0.9", 68)), (discover.encode(), ("0.0.0.0", 68))]
    )

    with pytest.raises(DhcpIoError):
        await run_server(server, opts, socket)

    assert len(socket.sent) == 1
    assert client.is_offer(Packet.decode(socket.sent[0][1]), xid)


@pytest.mark.asyncio
async def test_send_failure_is_reported():
    server, opts = make_setup()
    discover, _ = Client(MAC, random.Random(5)).discover()
    socket = FakeSocket([(discover.encode(), ("0.0.0.0", 68))], fail_send=True)

    with pytest.raises(DhcpIoError) as info:
        await run_server(server, opts, socket)

    assert str(info.value) == "IO error: send failed"


@pytest.mark.asyncio
async def test_asyncio_socket_round_trip_and_close():
    a = await AsyncioUdpSocket.bind(("127.0.0.1", 0))
    b = await AsyncioUdpSocket.bind(("127.0.0.1", 0))
    try:
        await a.send(b.local_addr, b"hello")
        data, sender = await asyncio.wait_for(b.receive(), 5)
        assert data == b"hello"
        assert sender == a.local_addr
    finally:
        a.close()
        b.close()

    with pytest.raises(ConnectionError):
        await asyncio.wait_for(b.receive(), 5)
    with pytest.raises(ConnectionError):
        await b.send(a.local_addr, b"late")


@pytest.mark.asyncio
async def test_server_over_loopback():
    server, opts = make_setup()
    client = Client(MAC, random.Random(6))
    async with await AsyncioUdpSocket.bind(("127.0.0.1", 0)) as server_socket:
        async with await AsyncioUdpSocket.bind(("127.0.0.1", 0)) as client_socket:
            task = asyncio.create_task(run_server(server, opts, server_socket))
            try:
                request, xid = client.request(0, "192.168.1.90", False)
                await client_socket.send(server_socket.local_addr, request.encode())
                data, _ = await asyncio.wait_for(client_socket.receive(), 5)
            finally:
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task

    reply = Packet.decode(data)
    assert client.is_ack(reply, xid)
    assert reply.yiaddr == IPv4Address("192.168.1.90")