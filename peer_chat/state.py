from __future__ import annotations

import logging
import time
from typing import Any
from uuid import uuid4

from peer_chat.constants import (
    CHATS_KEY,
    CONTACT_ID_HEX_LENGTH,
    CONTACT_ID_PREFIX,
    CONTACTS_KEY,
    DEFAULT_AVATAR,
    LAST_SEEN_NOW,
    METADATA_KEY,
    PREVIEW_AUDIO,
    PREVIEW_IMAGE,
    PROFILE_KEY,
    SELF_ID,
)
from peer_chat.errors import ContactError, PersistenceError
from peer_chat.event_helpers import emit_state_changed
from peer_chat.models import (
    ChatMetadata,
    ChatTheme,
    Contact,
    Message,
    MessageType,
    UserProfile,
)
from peer_chat.repositories.chat_repository import ChatRepository

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def message_preview(message: Message) -> str:
    if message.type == MessageType.IMAGE:
        return PREVIEW_IMAGE
    if message.type == MessageType.AUDIO:
        return PREVIEW_AUDIO
    return message.content


class ChatStateStore:
    """Authoritative local chat state.

    Every mutation runs to completion without awaiting, swaps in new
    objects, then commits: the affected documents are persisted and one
    ``StateChangedEvent`` is published. Subscribers therefore never see a
    half-applied change. A failed persistence write is logged and the state
    stays in memory.
    """

    def __init__(
        self, repository: ChatRepository | None = None, event_bus: Any = None
    ):
        self.repository = repository
        self.event_bus = event_bus
        self.profile: UserProfile | None = None
        self.focused_contact_id: str | None = None
        self.persistence_failures = 0
        self._contacts: list[Contact] = []
        self._sessions: dict[str, list[Message]] = {}
        self._metadata: dict[str, ChatMetadata] = {}
        self._peer_typing: dict[str, bool] = {}
        self._bot_typing: dict[str, bool] = {}
        self._last_message_ms = 0

    def load(self) -> None:
        if self.repository is None:
            return
        self.profile = self.repository.load_profile()
        self._contacts = self.repository.load_contacts()
        self._sessions = self.repository.load_sessions()
        self._metadata = self.repository.load_metadata()
        for messages in self._sessions.values():
            for message in messages:
                if message.id.isdigit():
                    self._last_message_ms = max(self._last_message_ms, int(message.id))
        emit_state_changed(self.event_bus, "loaded")

    # Reads

    @property
    def contacts(self) -> list[Contact]:
        return list(self._contacts)

    def get_contact(self, contact_id: str) -> Contact | None:
        for contact in self._contacts:
            if contact.id == contact_id:
                return contact
        return None

    def find_contact_by_username(
        self, username: str, *, case_sensitive: bool = True
    ) -> Contact | None:
        wanted = username if case_sensitive else username.lower()
        for contact in self._contacts:
            candidate = contact.username if case_sensitive else contact.username.lower()
            if candidate == wanted:
                return contact
        return None

    def history(self, contact_id: str) -> list[Message]:
        return list(self._sessions.get(contact_id, []))

    def find_message(self, contact_id: str, message_id: str) -> Message | None:
        for message in self._sessions.get(contact_id, []):
            if message.id == message_id:
                return message
        return None

    def metadata(self, contact_id: str) -> ChatMetadata:
        return self._metadata.get(contact_id) or ChatMetadata()

    def is_peer_typing(self, contact_id: str) -> bool:
        return self._peer_typing.get(contact_id, False)

    def is_bot_typing(self, contact_id: str) -> bool:
        return self._bot_typing.get(contact_id, False)

    # Identifiers

    def new_message_id(self) -> str:
        stamp = max(now_ms(), self._last_message_ms + 1)
        self._last_message_ms = stamp
        return str(stamp)

    def new_contact_id(self) -> str:
        while True:
            candidate = f"{CONTACT_ID_PREFIX}{uuid4().hex[:CONTACT_ID_HEX_LENGTH]}"
            if self.get_contact(candidate) is None:
                return candidate

    # Mutations

    def set_profile(self, profile: UserProfile) -> None:
        self.profile = profile
        self._commit("profile", None, PROFILE_KEY)

    def add_contact(self, contact: Contact) -> Contact:
        if self.get_contact(contact.id) is not None:
            raise ContactError(f"Contact id '{contact.id}' already exists.")
        if self.find_contact_by_username(contact.username) is not None:
            raise ContactError(f"Contact '{contact.username}' already exists.")
        self._contacts = [contact, *self._contacts]
        self._commit("contacts", contact.id, CONTACTS_KEY)
        return contact

    def upsert_contact_from_profile(
        self, username: str, display_name: str, avatar: str
    ) -> tuple[Contact, bool]:
        """Create or refresh the contact for ``username``; marks it online."""
        existing = self.find_contact_by_username(username)
        if existing is None:
            contact = Contact(
                id=self.new_contact_id(),
                username=username,
                name=display_name or username,
                avatar=avatar or DEFAULT_AVATAR,
                is_online=True,
            )
            self._contacts = [contact, *self._contacts]
            self._commit("contacts", contact.id, CONTACTS_KEY)
            return contact, True

        update: dict[str, Any] = {"is_online": True}
        if existing.name != display_name or existing.avatar != avatar:
            update["name"] = display_name or existing.name
            update["avatar"] = avatar or existing.avatar
        updated = existing.model_copy(update=update)
        if updated != existing:
            self._replace_contact(updated)
            self._commit("contacts", updated.id, CONTACTS_KEY)
        return updated, False

    def set_online(self, contact_id: str, online: bool) -> None:
        contact = self.get_contact(contact_id)
        if contact is None or contact.is_online == online:
            return
        self._replace_contact(contact.model_copy(update={"is_online": online}))
        self._commit("presence", contact_id, CONTACTS_KEY)

    def append_message(self, contact_id: str, message: Message) -> None:
        history = self._sessions.get(contact_id, [])
        sessions = dict(self._sessions)
        sessions[contact_id] = [*history, message]

        contact = self.get_contact(contact_id)
        updated_contact = None
        if contact is not None:
            # Focus is read now, not captured when the handler was set up.
            increment = (
                message.sender_id != SELF_ID
                and self.focused_contact_id != contact_id
            )
            updated_contact = contact.model_copy(
                update={
                    "last_message": message_preview(message),
                    "unread_count": contact.unread_count + (1 if increment else 0),
                    "last_seen": LAST_SEEN_NOW,
                }
            )

        self._sessions = sessions
        if updated_contact is not None:
            self._replace_contact(updated_contact)
        self._commit("message", contact_id, CHATS_KEY, CONTACTS_KEY)

    def toggle_reaction(
        self, contact_id: str, message_id: str, identity: str, emoji: str
    ) -> Message | None:
        history = self._sessions.get(contact_id)
        if not history:
            return None
        for index, message in enumerate(history):
            if message.id != message_id:
                continue
            toggled = message.with_reaction_toggled(identity, emoji)
            updated = list(history)
            updated[index] = toggled
            sessions = dict(self._sessions)
            sessions[contact_id] = updated
            self._sessions = sessions
            self._commit("reaction", contact_id, CHATS_KEY)
            return toggled
        return None

    def set_theme(self, contact_id: str, theme: ChatTheme) -> None:
        current = self.metadata(contact_id)
        metadata = dict(self._metadata)
        metadata[contact_id] = current.model_copy(update={"theme": theme})
        self._metadata = metadata
        self._commit("metadata", contact_id, METADATA_KEY)

    def clear_unread(self, contact_id: str) -> None:
        contact = self.get_contact(contact_id)
        if contact is None or contact.unread_count == 0:
            return
        self._replace_contact(contact.model_copy(update={"unread_count": 0}))
        self._commit("unread", contact_id, CONTACTS_KEY)

    def focus(self, contact_id: str | None) -> None:
        self.focused_contact_id = contact_id
        persist: tuple[str, ...] = ()
        if contact_id is not None:
            contact = self.get_contact(contact_id)
            if contact is not None and contact.unread_count > 0:
                self._replace_contact(contact.model_copy(update={"unread_count": 0}))
                persist = (CONTACTS_KEY,)
        self._commit("focus", contact_id, *persist)

    def set_peer_typing(self, contact_id: str, is_typing: bool) -> None:
        if self._peer_typing.get(contact_id, False) == is_typing:
            return
        self._peer_typing = {**self._peer_typing, contact_id: is_typing}
        self._commit("typing", contact_id)

    def set_bot_typing(self, contact_id: str, is_typing: bool) -> None:
        if self._bot_typing.get(contact_id, False) == is_typing:
            return
        self._bot_typing = {**self._bot_typing, contact_id: is_typing}
        self._commit("bot_typing", contact_id)

    def reset(self) -> None:
        self.profile = None
        self.focused_contact_id = None
        self._contacts = []
        self._sessions = {}
        self._metadata = {}
        self._peer_typing = {}
        self._bot_typing = {}
        if self.repository is not None:
            try:
                self.repository.clear_all()
            except PersistenceError as exc:
                self.persistence_failures += 1
                logger.warning("Failed clearing stored chat data: %s", exc)
        emit_state_changed(self.event_bus, "reset")

    def _replace_contact(self, updated: Contact) -> None:
        self._contacts = [
            updated if contact.id == updated.id else contact
            for contact in self._contacts
        ]

    def _commit(self, change: str, contact_id: str | None, *keys: str) -> None:
        if self.repository is not None:
            for key in keys:
                try:
                    self._persist(key)
                except PersistenceError as exc:
                    self.persistence_failures += 1
                    logger.warning(
                        "Persisting %s failed, keeping it in memory only: %s",
                        key,
                        exc,
                    )
        emit_state_changed(self.event_bus, change, contact_id)

    def _persist(self, key: str) -> None:
        assert self.repository is not None
        if key == PROFILE_KEY:
            if self.profile is not None:
                self.repository.save_profile(self.profile)
        elif key == CONTACTS_KEY:
            self.repository.save_contacts(self._contacts)
        elif key == CHATS_KEY:
            self.repository.save_sessions(self._sessions)
        elif key == METADATA_KEY:
            self.repository.save_metadata(self._metadata)
