from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Coroutine

from peer_chat.errors import AddressInUseError, PeerUnreachableError, TransportError
from peer_chat.event_helpers import emit_notice
from peer_chat.identity import IdentityResolver
from peer_chat.registry import ConnectionKey, ConnectionRegistry
from peer_chat.services.dispatch_service import EventDispatcher
from peer_chat.services.handshake_service import HandshakeService
from peer_chat.state import ChatStateStore
from peer_chat.transport.base import Connection, Endpoint, EndpointService

logger = logging.getLogger(__name__)


class EndpointState(str, Enum):
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    READY = "ready"
    FAULTED = "faulted"


class SessionService:
    """Owns the local endpoint and the lifecycle of every peer connection.

    Connection setup and teardown only touch shared state between awaits,
    so the registry and the store never observe a partially registered
    connection. Each connection gets one reader task which hands frames to
    the dispatcher in arrival order.
    """

    def __init__(
        self,
        network: EndpointService,
        store: ChatStateStore,
        registry: ConnectionRegistry,
        resolver: IdentityResolver,
        handshake: HandshakeService,
        dispatcher: EventDispatcher,
        event_bus: Any = None,
    ):
        self.network = network
        self.store = store
        self.registry = registry
        self.resolver = resolver
        self.handshake = handshake
        self.dispatcher = dispatcher
        self.event_bus = event_bus
        self.state = EndpointState.UNINITIALIZED
        self.endpoint: Endpoint | None = None
        self.local_address: str | None = None
        self._pending: set[asyncio.Task] = set()
        self._readers: set[asyncio.Task] = set()
        self._unregistered: set[Connection] = set()

    @property
    def is_ready(self) -> bool:
        return self.state == EndpointState.READY

    async def start(self, local_handle: str | None = None) -> EndpointState:
        if self.state != EndpointState.UNINITIALIZED:
            return self.state
        handle = local_handle
        if handle is None and self.store.profile is not None:
            handle = self.store.profile.username
        if not handle:
            raise TransportError("Cannot start an endpoint without a local handle.")

        self.state = EndpointState.STARTING
        address = self.resolver.derive_address(handle)
        try:
            endpoint = await self.network.bind(address)
        except AddressInUseError as exc:
            self.state = EndpointState.FAULTED
            logger.warning("Endpoint %s unavailable: %s", address, exc)
            emit_notice(self.event_bus, str(exc), level="error", source="session")
            return self.state
        except TransportError as exc:
            self.state = EndpointState.FAULTED
            logger.warning("Binding endpoint %s failed: %s", address, exc)
            emit_notice(
                self.event_bus,
                f"Could not open connection endpoint: {exc}",
                level="error",
                source="session",
            )
            return self.state

        endpoint.on_incoming_connection(self._on_incoming)
        self.endpoint = endpoint
        self.local_address = address
        self.state = EndpointState.READY
        logger.info("Endpoint ready at %s", address)
        self.reconnect_known_contacts()
        return self.state

    def reconnect_known_contacts(self) -> int:
        """Dial every human contact independently; failures stay local."""
        started = 0
        for contact in self.store.contacts:
            if contact.is_bot:
                continue
            self._spawn(self._reconnect(contact.username, contact.id), self._pending)
            started += 1
        return started

    async def _reconnect(self, handle: str, contact_id: str) -> None:
        try:
            await self.connect(handle, contact_id)
        except TransportError as exc:
            logger.info("Reconnect to '%s' failed: %s", handle, exc)

    async def connect(self, handle: str, contact_id: str | None = None) -> Connection:
        if self.endpoint is None or not self.is_ready:
            raise TransportError("Connection endpoint is not ready.")
        address = self.resolver.derive_address(handle)
        try:
            connection = await self.endpoint.connect(address)
        except PeerUnreachableError as exc:
            logger.warning("Could not reach '%s': %s", handle, exc)
            raise

        if contact_id is not None and self.store.get_contact(contact_id) is None:
            contact_id = None
        if contact_id is not None:
            current = self.registry.get_open_for_contact(contact_id)
            if current is not None and current is not connection:
                # A live connection won while we were dialing.
                logger.info("Keeping existing connection to '%s'.", handle)
                self._unregistered.add(connection)
                self._start_reader(connection)
                return connection

        await self.setup_connection(connection, contact_id)
        return connection

    def _on_incoming(self, connection: Connection) -> None:
        self._spawn(self.setup_connection(connection), self._pending)

    async def setup_connection(
        self, connection: Connection, contact_id: str | None = None
    ) -> None:
        if contact_id is None:
            contact_id = self.resolver.resolve_contact_for_address(connection.peer)

        self._start_reader(connection)
        if contact_id is not None:
            self.registry.register(ConnectionKey.for_contact(contact_id), connection)
            self.store.set_online(contact_id, True)
        else:
            self.registry.register(ConnectionKey.for_address(connection.peer), connection)
        await self.handshake.send_profile(connection)

    def _start_reader(self, connection: Connection) -> None:
        self._spawn(self._read_frames(connection), self._readers)

    async def _read_frames(self, connection: Connection) -> None:
        try:
            async for frame in connection:
                try:
                    self.dispatcher.dispatch(frame, connection)
                except Exception:
                    logger.exception("Handling frame from %s failed", connection.peer)
        except TransportError as exc:
            logger.info("Connection to %s broke: %s", connection.peer, exc)
        self._unregistered.discard(connection)
        # Cancellation means shutdown; stop() settles presence itself.
        self._on_closed(connection)

    def _on_closed(self, connection: Connection) -> None:
        key = self.registry.find_key_for_connection(connection)
        if key is None:
            return
        self.registry.unregister(key)
        logger.info("Connection %s closed", key.value)
        if not key.is_provisional:
            self.store.set_peer_typing(key.value, False)
            self.store.set_online(key.value, False)

    def _spawn(self, coro: Coroutine[Any, Any, None], bucket: set[asyncio.Task]) -> None:
        task = asyncio.create_task(coro)
        bucket.add(task)
        task.add_done_callback(bucket.discard)

    async def wait_idle(self) -> None:
        """Wait until no connection attempt or setup is in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        # Let readers pick up frames that were queued during setup.
        for _ in range(10):
            await asyncio.sleep(0)
        if self._pending:
            await self.wait_idle()

    async def stop(self) -> None:
        for task in list(self._pending):
            task.cancel()
        for key, _connection in list(self.registry.items()):
            if not key.is_provisional:
                self.store.set_peer_typing(key.value, False)
                self.store.set_online(key.value, False)
        for connection in [*self.registry.clear(), *self._unregistered]:
            await connection.close()
        self._unregistered.clear()
        for task in list(self._readers):
            task.cancel()
        tasks = [*self._pending, *self._readers]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self.endpoint is not None:
            await self.endpoint.close()
        self.endpoint = None
        self.local_address = None
        self.state = EndpointState.UNINITIALIZED
        logger.info("Session stopped")
