from __future__ import annotations

import logging

from peer_chat.errors import TransportError
from peer_chat.protocol import ProfileInfoPayload, encode_event, profile_info_event
from peer_chat.registry import ConnectionKey, ConnectionRegistry
from peer_chat.state import ChatStateStore
from peer_chat.transport.base import Connection

logger = logging.getLogger(__name__)


class HandshakeService:
    """Profile exchange: fire-and-forget, idempotent, no acknowledgement."""

    def __init__(self, store: ChatStateStore, registry: ConnectionRegistry):
        self.store = store
        self.registry = registry

    async def send_profile(self, connection: Connection) -> bool:
        profile = self.store.profile
        if profile is None or not connection.is_open:
            return False
        try:
            await connection.send(encode_event(profile_info_event(profile)))
        except TransportError as exc:
            logger.warning("Failed sending profile to %s: %s", connection.peer, exc)
            return False
        return True

    async def broadcast_profile(self) -> int:
        sent = 0
        for connection in self.registry.open_connections():
            if await self.send_profile(connection):
                sent += 1
        return sent

    def apply_profile_info(
        self, payload: ProfileInfoPayload, connection: Connection
    ) -> str | None:
        username = payload.username.strip()
        if not username:
            return None
        existing = self.store.find_contact_by_username(username)
        if existing is not None and existing.is_bot:
            logger.debug("Ignoring profile from %s claiming bot handle.", connection.peer)
            return None

        contact, created = self.store.upsert_contact_from_profile(
            username, payload.displayName.strip(), payload.avatar
        )
        if created:
            logger.info("New contact '%s' from %s", username, connection.peer)
        self._bind_connection(contact.id, connection)
        return contact.id

    def _bind_connection(self, contact_id: str, connection: Connection) -> None:
        contact_key = ConnectionKey.for_contact(contact_id)
        current_key = self.registry.find_key_for_connection(connection)
        if current_key == contact_key:
            return
        if current_key is None:
            if self.registry.get_open_for_contact(contact_id) is None:
                self.registry.register(contact_key, connection)
            return
        self.registry.rekey(current_key, contact_key)
        if not current_key.is_provisional:
            # The peer renamed itself; its old identity has no connection left.
            logger.info("Contact %s now answers as %s", current_key.value, contact_id)
            self.store.set_peer_typing(current_key.value, False)
            self.store.set_online(current_key.value, False)
