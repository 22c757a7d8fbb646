# edge-net

Small, dependency-free building blocks for two protocols that show up on
small local networks and access points:

* **DHCP**: a packet codec, a client and a lease-keeping server that work
  purely on packets, plus asyncio helpers that drive them over UDP.
* **Captive-portal DNS**: a responder that answers every `A`/`IN` question
  with one fixed IPv4 address, so that every host name resolves to your portal.

The protocol logic never touches sockets. The I/O functions take any object
that behaves like the `UdpSocket` protocol in `edge_net.dhcp_io` (an async
`send(remote, data)` and an async `receive()` returning `(data, remote)`), and
`AsyncioUdpSocket` is a ready-made implementation on the asyncio event loop.

Only the standard library is needed.

## Modules

| Module | What it holds |
| --- | --- |
| `edge_net.dhcp_options` | `MessageType`, the `DhcpOption` family (`MessageTypeOption`, `ServerIdentifier`, `Router`, `SubnetMask`, `DomainNameServer`, `CaptiveUrl`, `Unrecognized`, …), the `Options` list, `DhcpError` and `ErrorKind` |
| `edge_net.dhcp_packet` | `Packet` (BOOTP/DHCP encode and decode) and `Settings`, the useful fields of a server reply |
| `edge_net.dhcp_client` | `Client`, which builds DISCOVER/REQUEST/RELEASE/DECLINE packets and recognises OFFER/ACK/NAK replies |
| `edge_net.dhcp_server` | `Server` with its in-memory lease table, and `ServerOptions` describing what the server hands out |
| `edge_net.dhcp_io` | the `UdpSocket` protocol, `AsyncioUdpSocket`, `run_server` and `DhcpIoError` |
| `edge_net.dhcp_lease` | `DhcpLease` and `NetworkInfo`: acquire, keep, renew and release a lease |
| `edge_net.captive_dns` | `reply`, which builds the DNS response, and the `DnsError` family |
| `edge_net.captive_io` | `run` and `serve`, the UDP loop of the captive DNS responder |

## Building and reading DHCP packets

```python
from edge_net.dhcp_options import MessageType, Options
from edge_net.dhcp_packet import Packet

mac = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x01])  # made up

request = Packet.new_request(mac, 0x1234, 0, None, True, Options.discover(None))
wire = request.encode()            # padded to at least 272 bytes

decoded = Packet.decode(wire)
assert decoded.xid == 0x1234
assert decoded.options.message_type() is MessageType.DISCOVER
```

`Packet.decode` raises `DhcpError`, whose `kind` is an `ErrorKind`, on short
data, a hardware-address length other than 6, a missing magic cookie, an
unknown message type, an option whose payload has the wrong length, or invalid
UTF-8 in a text option. Options are decoded up to the end marker.

`Options.reply` builds the options of a server reply: message type, server
identifier and lease time first, then, unless the reply is a NAK, the options
the client listed in its parameter request list (router, DNS, subnet mask,
captive-portal URL) in the order asked, as long as the server has a value for
them and the list stays within eight options.

## A DHCP server

A `Server` hands out addresses `.50` to `.200` of the server's own /24 and keeps
leases keyed by address, at most `capacity` of them (64 by default). Time comes
from the `now` callable, in seconds (by default `time.monotonic`).
`handle_request` takes a decoded request and returns the reply packet to send,
or `None` when nothing should be sent, for example after a RELEASE or DECLINE
or when the request is addressed to another server.

`ServerOptions` holds what the server hands out: its address, gateways, subnet
mask (`255.255.255.0` by default), DNS servers, a captive-portal URL and the
lease duration (7200 seconds by default). `ServerOptions.create(ip,
with_gateway=True)` makes the server its own gateway.

`run_server` wraps this in an asyncio loop over a UDP socket. Undecodable
packets are skipped; replies go to `255.255.255.255` when the request has the
broadcast flag set or came from `0.0.0.0`. Socket and encoding failures are
raised as `DhcpIoError`, whose `error` attribute holds the underlying
`OSError` or `DhcpError`.

```python
import asyncio

from edge_net.dhcp_io import DEFAULT_SERVER_PORT, AsyncioUdpSocket, run_server
from edge_net.dhcp_server import Server, ServerOptions


async def main() -> None:
    options = ServerOptions.create("192.168.4.1", with_gateway=True)
    server = Server("192.168.4.1")
    async with await AsyncioUdpSocket.bind(
        ("0.0.0.0", DEFAULT_SERVER_PORT), broadcast=True
    ) as socket:
        await run_server(server, options, socket)


asyncio.run(main())
```

Binding port 67 usually needs administrator rights. The lease table lives in
the `Server` object, so cancelling `run_server` loses nothing.

## A DHCP client

`Client(mac)` builds requests with a fresh 32-bit transaction id each time
(from `random.Random` unless another `rng` with `getrandbits` is given) and
checks replies against its MAC address and that id.

`DhcpLease.acquire` runs the whole DISCOVER/OFFER/REQUEST/ACK exchange over a
socket, retrying until it succeeds, and returns the lease together with the
`NetworkInfo` (gateway, subnet, two DNS servers, captive-portal URL) the server
sent. `renew` asks the server to extend the lease and returns whether it
agreed; `keep` renews once a third of the lease time has passed and returns
when a renewal fails; `release` gives the address back.

```python
import asyncio

from edge_net.dhcp_client import Client
from edge_net.dhcp_io import DEFAULT_CLIENT_PORT, AsyncioUdpSocket
from edge_net.dhcp_lease import DhcpLease


async def main() -> None:
    client = Client(bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x01]))
    async with await AsyncioUdpSocket.bind(
        ("0.0.0.0", DEFAULT_CLIENT_PORT), broadcast=True
    ) as socket:
        lease, info = await DhcpLease.acquire(client, socket)
        print(lease.ip, info.gateway, info.dns1)
        await lease.release(client, socket)


asyncio.run(main())
```

## Captive-portal DNS

`edge_net.captive_dns.reply(request, ip, ttl, max_size=1500)` turns one DNS
message into a response. `QUERY` messages get an `A` record with `ip` for each
`A`/`IN` question, and every question is echoed; any other opcode is answered
with `NOTIMP`. `ttl` is a `timedelta` or a number of seconds. A message that
cannot be parsed raises `DnsInvalidMessageError`; a response larger than
`max_size` raises `DnsShortBufError`. Both derive from `DnsError`.

`edge_net.captive_io.run(socket, ip, ttl)` answers queries arriving on a
socket, skipping malformed ones. `serve(local_addr, ip, ttl)` binds an
`AsyncioUdpSocket` to `local_addr` and runs the same loop;
`edge_net.captive_io.DEFAULT_SOCKET` is `("::", 53)`.

```python
import asyncio

from edge_net.captive_io import DEFAULT_SOCKET, serve

asyncio.run(serve(DEFAULT_SOCKET, "192.168.4.1", 60))
```

## What it does not do

* There is no command-line program; everything is used from Python.
* Server leases are kept in memory only and are not stored anywhere.
* The DHCP client only negotiates the lease; it does not configure a network
  interface with the address it obtains.
* Replies to clients without an address are sent to the IPv4 broadcast
  address; unicasting to a client's hardware address is not supported.
* The captive DNS responder works over UDP only and answers only `A`
  questions.

## Testing

The test suite uses pytest and pytest-asyncio, available through the `test`
extra:

```
pip install -e .[test]
pytest
```