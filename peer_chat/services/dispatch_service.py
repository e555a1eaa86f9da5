from __future__ import annotations

import logging

from peer_chat.errors import ProtocolError
from peer_chat.identity import IdentityResolver
from peer_chat.models import Message
from peer_chat.protocol import (
    MessageEvent,
    MessagePayload,
    ProfileInfoEvent,
    ReactionEvent,
    TypingEvent,
    decode_event,
    meta_from_wire,
)
from peer_chat.registry import ConnectionRegistry
from peer_chat.services.handshake_service import HandshakeService
from peer_chat.state import ChatStateStore
from peer_chat.transport.base import Connection

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Routes inbound frames to chat-state mutations.

    ``dispatch`` is synchronous: each frame is applied completely before the
    reader awaits the next one. Frames that cannot be decoded, or that come
    from a sender no contact can be matched to, are dropped without error
    because a peer's first message may overtake its profile.
    """

    def __init__(
        self,
        store: ChatStateStore,
        registry: ConnectionRegistry,
        resolver: IdentityResolver,
        handshake: HandshakeService,
    ):
        self.store = store
        self.registry = registry
        self.resolver = resolver
        self.handshake = handshake
        self.dropped = 0

    def dispatch(self, frame: str, connection: Connection) -> bool:
        try:
            event = decode_event(frame)
        except ProtocolError as exc:
            self._drop(connection, f"malformed frame ({exc})")
            return False

        if isinstance(event, ProfileInfoEvent):
            if self.handshake.apply_profile_info(event.payload, connection) is None:
                self._drop(connection, "unusable profile")
                return False
            return True

        sender_id = self.resolve_sender(connection)
        if sender_id is None:
            self._drop(connection, f"{event.type} from unknown sender")
            return False

        if isinstance(event, MessageEvent):
            self._on_message(sender_id, event.payload)
        elif isinstance(event, TypingEvent):
            self.store.set_peer_typing(sender_id, event.payload.isTyping)
        elif isinstance(event, ReactionEvent):
            toggled = self.store.toggle_reaction(
                sender_id, event.payload.messageId, sender_id, event.payload.emoji
            )
            if toggled is None:
                logger.debug(
                    "Reaction for unknown message %s ignored.", event.payload.messageId
                )
        return True

    def resolve_sender(self, connection: Connection) -> str | None:
        key = self.registry.find_key_for_connection(connection)
        if key is not None and not key.is_provisional:
            if self.store.get_contact(key.value) is not None:
                return key.value
        return self.resolver.resolve_contact_for_address(connection.peer)

    def _on_message(self, sender_id: str, payload: MessagePayload) -> None:
        message = Message(
            id=self.store.new_message_id(),
            sender_id=sender_id,
            content=payload.content,
            type=payload.messageType,
            timestamp=payload.timestamp,
            meta=meta_from_wire(payload.meta),
        )
        self.store.set_peer_typing(sender_id, False)
        self.store.append_message(sender_id, message)

    def _drop(self, connection: Connection, reason: str) -> None:
        self.dropped += 1
        logger.debug("Dropped inbound event from %s: %s", connection.peer, reason)
