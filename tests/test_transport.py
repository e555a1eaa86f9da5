import asyncio

import pytest

from peer_chat.errors import AddressInUseError, PeerUnreachableError, TransportError
from peer_chat.transport import LoopbackNetwork, TcpNetwork


async def _collect(connection, count: int) -> list[str]:
    frames: list[str] = []
    async for frame in connection:
        frames.append(frame)
        if len(frames) == count:
            break
    return frames


def test_loopback_delivers_frames_in_order_and_closes_both_sides():
    async def scenario():
        network = LoopbackNetwork()
        accepted = []
        alice = await network.bind("alice")
        alice.on_incoming_connection(accepted.append)
        bob = await network.bind("bob")

        conn = await bob.connect("alice")
        await conn.send("one")
        await conn.send("two")
        inbound = accepted[0]
        received = await _collect(inbound, 2)

        await inbound.close()
        with pytest.raises(TransportError):
            await conn.send("three")
        return conn, inbound, received

    conn, inbound, received = asyncio.run(scenario())
    assert received == ["one", "two"]
    assert inbound.peer == "bob"
    assert conn.peer == "alice"
    assert conn.is_open is False


def test_loopback_rejects_duplicate_bind_and_unknown_peer():
    async def scenario():
        network = LoopbackNetwork()
        endpoint = await network.bind("nova")
        with pytest.raises(AddressInUseError):
            await network.bind("nova")
        with pytest.raises(PeerUnreachableError):
            await endpoint.connect("ghost")
        await endpoint.close()
        return await network.bind("nova")

    assert asyncio.run(scenario()).address == "nova"


def test_tcp_hello_identifies_dialer_and_frames_round_trip():
    async def scenario():
        alice_net = TcpNetwork(listen_host="127.0.0.1", listen_port=0)
        alice = await alice_net.bind("alice")
        accepted: list = []
        arrived = asyncio.Event()

        def on_incoming(connection):
            accepted.append(connection)
            arrived.set()

        alice.on_incoming_connection(on_incoming)
        bob_net = TcpNetwork(
            directory={"alice": ("127.0.0.1", alice.port)},
            listen_host="127.0.0.1",
            listen_port=0,
        )
        bob = await bob_net.bind("bob")
        try:
            conn = await bob.connect("alice")
            await asyncio.wait_for(arrived.wait(), timeout=2.0)
            inbound = accepted[0]
            await conn.send('{"type": "TYPING",\n"payload": {"isTyping": true}}')
            received = await asyncio.wait_for(_collect(inbound, 1), timeout=2.0)
            await inbound.send("pong")
            reply = await asyncio.wait_for(_collect(conn, 1), timeout=2.0)
            await conn.close()
            await inbound.close()
            return inbound.peer, received, reply
        finally:
            await bob.close()
            await alice.close()

    peer, received, reply = asyncio.run(scenario())
    assert peer == "bob"
    assert received == ['{"type": "TYPING", "payload": {"isTyping": true}}']
    assert reply == ["pong"]


def test_tcp_reports_address_in_use_and_unknown_peers():
    async def scenario():
        first_net = TcpNetwork(listen_host="127.0.0.1", listen_port=0)
        first = await first_net.bind("nova")
        try:
            clash = TcpNetwork(listen_host="127.0.0.1", listen_port=first.port)
            with pytest.raises(AddressInUseError):
                await clash.bind("nova")
            with pytest.raises(PeerUnreachableError):
                await first.connect("ghost")
        finally:
            await first.close()

    asyncio.run(scenario())
