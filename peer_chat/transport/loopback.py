from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable

from peer_chat.errors import AddressInUseError, PeerUnreachableError, TransportError

logger = logging.getLogger(__name__)

_CLOSED = object()


class LoopbackConnection:
    """One side of an in-process connection pair."""

    def __init__(self, local: str, peer: str):
        self.local = local
        self.peer = peer
        self._inbox: asyncio.Queue[object] = asyncio.Queue()
        self._remote: LoopbackConnection | None = None
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    async def send(self, frame: str) -> None:
        remote = self._remote
        if not self._open or remote is None or not remote._open:
            raise TransportError(f"Connection to '{self.peer}' is closed.")
        remote._inbox.put_nowait(frame)

    async def close(self) -> None:
        self._shutdown()
        remote = self._remote
        if remote is not None:
            remote._shutdown()

    def _shutdown(self) -> None:
        if not self._open:
            return
        self._open = False
        self._inbox.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self._inbox.get()
            if item is _CLOSED:
                return
            assert isinstance(item, str)
            yield item


class LoopbackEndpoint:
    def __init__(self, network: "LoopbackNetwork", address: str):
        self.network = network
        self.address = address
        self._handler: Callable[[LoopbackConnection], None] | None = None
        self._closed = False

    def on_incoming_connection(
        self, handler: Callable[[LoopbackConnection], None]
    ) -> None:
        self._handler = handler

    async def connect(self, address: str) -> LoopbackConnection:
        if self._closed:
            raise TransportError("Endpoint is closed.")
        # Connection establishment always suspends, like a real handshake.
        await asyncio.sleep(0)
        target = self.network.lookup(address)
        if target is None or target._handler is None:
            raise PeerUnreachableError(address, "no such peer online")
        local_side = LoopbackConnection(local=self.address, peer=address)
        remote_side = LoopbackConnection(local=address, peer=self.address)
        local_side._remote = remote_side
        remote_side._remote = local_side
        target._handler(remote_side)
        return local_side

    async def close(self) -> None:
        self._closed = True
        self.network.release(self)


class LoopbackNetwork:
    """In-process overlay network: addresses map straight to endpoints."""

    def __init__(self) -> None:
        self._endpoints: dict[str, LoopbackEndpoint] = {}

    async def bind(self, address: str) -> LoopbackEndpoint:
        await asyncio.sleep(0)
        if address in self._endpoints:
            raise AddressInUseError(address)
        endpoint = LoopbackEndpoint(self, address)
        self._endpoints[address] = endpoint
        logger.info("Loopback endpoint bound at %s", address)
        return endpoint

    def lookup(self, address: str) -> LoopbackEndpoint | None:
        return self._endpoints.get(address)

    def release(self, endpoint: LoopbackEndpoint) -> None:
        if self._endpoints.get(endpoint.address) is endpoint:
            del self._endpoints[endpoint.address]
