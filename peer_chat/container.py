from __future__ import annotations

from dependency_injector import containers, providers  # type: ignore[import-not-found]

from peer_chat.event_bus import EventBus
from peer_chat.identity import IdentityResolver
from peer_chat.providers import GeminiClient
from peer_chat.registry import ConnectionRegistry
from peer_chat.repositories import ChatRepository, JsonFileKeyValueStore
from peer_chat.services import (
    ContactService,
    EventDispatcher,
    GeminiResponder,
    HandshakeService,
    OutboundPipeline,
    SessionService,
)
from peer_chat.state import ChatStateStore
from peer_chat.transport import LoopbackNetwork, TcpNetwork


class PeerChatContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    kv_store = providers.Singleton(JsonFileKeyValueStore, root=config.data_dir)
    chat_repository = providers.Singleton(ChatRepository, kv_store=kv_store)

    event_bus = providers.Singleton(EventBus, maxsize=512, publish_timeout_seconds=0.1)
    store = providers.Singleton(
        ChatStateStore, repository=chat_repository, event_bus=event_bus
    )
    registry = providers.Singleton(ConnectionRegistry)
    resolver = providers.Singleton(IdentityResolver, store=store)

    network = providers.Selector(
        config.transport,
        tcp=providers.Singleton(
            TcpNetwork,
            directory=config.peers,
            listen_host=config.listen_host,
            listen_port=config.listen_port,
            connect_timeout_seconds=config.connect_timeout_seconds,
        ),
        loopback=providers.Singleton(LoopbackNetwork),
    )

    handshake_service = providers.Singleton(
        HandshakeService, store=store, registry=registry
    )
    dispatcher = providers.Singleton(
        EventDispatcher,
        store=store,
        registry=registry,
        resolver=resolver,
        handshake=handshake_service,
    )
    session_service = providers.Singleton(
        SessionService,
        network=network,
        store=store,
        registry=registry,
        resolver=resolver,
        handshake=handshake_service,
        dispatcher=dispatcher,
        event_bus=event_bus,
    )

    gemini_client = providers.Factory(GeminiClient)
    responder = providers.Singleton(
        GeminiResponder, settings=config.gemini, client=gemini_client
    )
    outbound_service = providers.Singleton(
        OutboundPipeline,
        store=store,
        registry=registry,
        handshake=handshake_service,
        responder=responder,
    )
    contact_service = providers.Singleton(
        ContactService,
        store=store,
        session=session_service,
        handshake=handshake_service,
        event_bus=event_bus,
    )
