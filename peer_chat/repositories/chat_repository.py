from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from peer_chat.constants import (
    CHATS_KEY,
    CONTACTS_KEY,
    DEFAULT_AVATAR,
    METADATA_KEY,
    PERSISTED_KEYS,
    PROFILE_KEY,
)
from peer_chat.models import ChatMetadata, Contact, Message, UserProfile
from peer_chat.repositories.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class ChatRepository:
    """Maps chat state onto the key-value store as JSON documents.

    Loading is lenient: malformed documents or rows are skipped with a
    warning. Saving raises ``PersistenceError`` from the underlying store and
    leaves it to the caller to decide whether that is fatal.
    """

    def __init__(self, kv_store: KeyValueStore):
        self.kv_store = kv_store

    def _load_json(self, key: str) -> Any:
        raw = self.kv_store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Failed to parse stored '%s': %s", key, exc)
            return None

    def _save_json(self, key: str, payload: Any) -> None:
        self.kv_store.set(key, json.dumps(payload, ensure_ascii=False).encode("utf-8"))

    def load_profile(self) -> UserProfile | None:
        data = self._load_json(PROFILE_KEY)
        if not isinstance(data, dict):
            return None
        if not data.get("avatar"):
            data["avatar"] = DEFAULT_AVATAR
        try:
            return UserProfile.model_validate(data)
        except ValidationError as exc:
            logger.warning("Stored profile is invalid: %s", exc)
            return None

    def save_profile(self, profile: UserProfile) -> None:
        self._save_json(PROFILE_KEY, profile.to_dict())

    def load_contacts(self) -> list[Contact]:
        data = self._load_json(CONTACTS_KEY)
        if not isinstance(data, list):
            return []
        contacts: list[Contact] = []
        seen_usernames: set[str] = set()
        for row in data:
            if not isinstance(row, dict):
                continue
            try:
                contact = Contact.model_validate(row)
            except ValidationError as exc:
                logger.warning("Skipping invalid stored contact: %s", exc)
                continue
            if contact.username in seen_usernames:
                logger.warning("Skipping duplicate contact '%s'.", contact.username)
                continue
            seen_usernames.add(contact.username)
            # Online status is derived from live connections, none exist yet.
            contacts.append(contact.model_copy(update={"is_online": False}))
        return contacts

    def save_contacts(self, contacts: list[Contact]) -> None:
        self._save_json(CONTACTS_KEY, [contact.to_dict() for contact in contacts])

    def load_sessions(self) -> dict[str, list[Message]]:
        data = self._load_json(CHATS_KEY)
        if not isinstance(data, dict):
            return {}
        sessions: dict[str, list[Message]] = {}
        for contact_id, rows in data.items():
            if not isinstance(rows, list):
                continue
            messages: list[Message] = []
            for row in rows:
                if not isinstance(row, dict):
                    continue
                try:
                    messages.append(Message.from_dict(row))
                except ValidationError as exc:
                    logger.warning("Skipping invalid stored message: %s", exc)
            sessions[str(contact_id)] = messages
        return sessions

    def save_sessions(self, sessions: dict[str, list[Message]]) -> None:
        self._save_json(
            CHATS_KEY,
            {
                contact_id: [message.to_dict() for message in messages]
                for contact_id, messages in sessions.items()
            },
        )

    def load_metadata(self) -> dict[str, ChatMetadata]:
        data = self._load_json(METADATA_KEY)
        if not isinstance(data, dict):
            return {}
        metadata: dict[str, ChatMetadata] = {}
        for contact_id, row in data.items():
            if not isinstance(row, dict):
                continue
            try:
                metadata[str(contact_id)] = ChatMetadata.model_validate(row)
            except ValidationError as exc:
                logger.warning("Skipping invalid chat metadata: %s", exc)
        return metadata

    def save_metadata(self, metadata: dict[str, ChatMetadata]) -> None:
        self._save_json(
            METADATA_KEY,
            {contact_id: meta.to_dict() for contact_id, meta in metadata.items()},
        )

    def clear_all(self) -> None:
        for key in PERSISTED_KEYS:
            self.kv_store.remove(key)
