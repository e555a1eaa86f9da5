from __future__ import annotations

import logging
from typing import Any

from peer_chat.constants import SELF_ID
from peer_chat.errors import ContactError, TransportError
from peer_chat.media import Attachment
from peer_chat.models import Contact, Message, MessageMeta, MessageType
from peer_chat.protocol import (
    WireEvent,
    encode_event,
    message_event,
    reaction_event,
    typing_event,
)
from peer_chat.registry import ConnectionRegistry
from peer_chat.services.handshake_service import HandshakeService
from peer_chat.state import ChatStateStore, now_ms

logger = logging.getLogger(__name__)


class OutboundPipeline:
    """Turns one user send into messages, wire events and bot replies.

    Parts are handled in the fixed order image, audio, text. Each part is
    appended locally before it is transmitted, so a failed send never loses
    the local copy.
    """

    def __init__(
        self,
        store: ChatStateStore,
        registry: ConnectionRegistry,
        handshake: HandshakeService,
        responder: Any = None,
    ):
        self.store = store
        self.registry = registry
        self.handshake = handshake
        self.responder = responder

    async def send_message(
        self,
        contact_id: str,
        text: str | None = None,
        image: Attachment | None = None,
        audio: Attachment | None = None,
    ) -> list[Message]:
        contact = self.store.get_contact(contact_id)
        if contact is None:
            raise ContactError(f"Unknown contact '{contact_id}'.")

        parts: list[tuple[MessageType, str, MessageMeta | None]] = []
        for kind, attachment in ((MessageType.IMAGE, image), (MessageType.AUDIO, audio)):
            if attachment is not None:
                meta = MessageMeta(mime_type=attachment.mime_type)
                parts.append((kind, attachment.to_data_url(), meta))
        if text is not None and text.strip():
            parts.append((MessageType.TEXT, text.strip(), None))
        if not parts:
            return []

        turn: list[Message] = []
        delivered = 0
        for kind, content, meta in parts:
            message = self._compose(SELF_ID, kind, content, meta)
            self.store.append_message(contact_id, message)
            turn.append(message)
            if not contact.is_bot and await self._transmit(
                contact_id, message_event(message)
            ):
                delivered += 1

        if contact.is_bot:
            await self._run_responder(contact_id, turn)
        elif delivered:
            connection = self.registry.get_open_for_contact(contact_id)
            if connection is not None:
                await self.handshake.send_profile(connection)
        else:
            logger.info("'%s' is offline; message kept locally.", contact.username)
        return turn

    async def send_typing(self, contact_id: str, is_typing: bool) -> bool:
        contact = self.store.get_contact(contact_id)
        if contact is None or contact.is_bot:
            return False
        return await self._transmit(contact_id, typing_event(is_typing))

    async def react(
        self, contact_id: str, message_id: str, emoji: str
    ) -> Message | None:
        toggled = self.store.toggle_reaction(contact_id, message_id, SELF_ID, emoji)
        if toggled is None:
            return None
        contact = self.store.get_contact(contact_id)
        if contact is not None and not contact.is_bot:
            await self._transmit(contact_id, reaction_event(message_id, emoji))
        return toggled

    def _compose(
        self,
        sender_id: str,
        kind: MessageType,
        content: str,
        meta: MessageMeta | None = None,
    ) -> Message:
        return Message(
            id=self.store.new_message_id(),
            sender_id=sender_id,
            content=content,
            type=kind,
            timestamp=now_ms(),
            meta=meta,
        )

    async def _transmit(self, contact_id: str, event: WireEvent) -> bool:
        connection = self.registry.get_open_for_contact(contact_id)
        if connection is None:
            return False
        try:
            await connection.send(encode_event(event))
        except TransportError as exc:
            logger.warning("Sending %s to %s failed: %s", event.type, contact_id, exc)
            return False
        return True

    async def _run_responder(self, contact_id: str, turn: list[Message]) -> None:
        if self.responder is None:
            logger.warning("No responder configured; bot '%s' stays silent.", contact_id)
            return
        self.store.set_bot_typing(contact_id, True)
        try:
            contact: Contact | None = self.store.get_contact(contact_id)
            if contact is None:
                return
            reply = await self.responder.respond(
                contact, self.store.history(contact_id), turn
            )
            if self.store.get_contact(contact_id) is None:
                logger.info("Dropping reply for removed bot '%s'.", contact_id)
                return
            if reply.image_data:
                self.store.append_message(
                    contact_id,
                    self._compose(contact_id, MessageType.IMAGE, reply.image_data),
                )
            if reply.text:
                self.store.append_message(
                    contact_id, self._compose(contact_id, MessageType.TEXT, reply.text)
                )
        except Exception:
            logger.exception("Responder for '%s' failed", contact_id)
        finally:
            self.store.set_bot_typing(contact_id, False)
