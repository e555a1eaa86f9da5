from __future__ import annotations

import logging
from typing import Any

from peer_chat.constants import (
    BOT_DIRECTORY,
    CUSTOM_THEME_ID,
    DEFAULT_AVATAR,
    PRESET_THEMES,
)
from peer_chat.errors import ContactError, TransportError
from peer_chat.event_helpers import emit_notice
from peer_chat.media import Attachment
from peer_chat.models import ChatTheme, Contact, UserProfile
from peer_chat.services.handshake_service import HandshakeService
from peer_chat.services.session_service import SessionService
from peer_chat.state import ChatStateStore

logger = logging.getLogger(__name__)


def find_bot(handle: str) -> dict[str, Any] | None:
    wanted = handle.strip().lower()
    for entry in BOT_DIRECTORY:
        if entry["username"].lower() == wanted:
            return entry
    return None


class ContactService:
    def __init__(
        self,
        store: ChatStateStore,
        session: SessionService,
        handshake: HandshakeService,
        event_bus: Any = None,
    ):
        self.store = store
        self.session = session
        self.handshake = handshake
        self.event_bus = event_bus

    async def add_contact(self, handle: str) -> Contact:
        handle = handle.strip()
        if not handle:
            raise ContactError("Enter a username to add.")
        if self.store.find_contact_by_username(handle, case_sensitive=False):
            raise ContactError(f"'{handle}' is already in your contacts.")

        bot = find_bot(handle)
        if bot is not None:
            contact = self.store.add_contact(Contact(**bot, is_online=True))
            self.store.focus(contact.id)
            return contact

        contact = self.store.add_contact(
            Contact(
                id=self.store.new_contact_id(),
                username=handle,
                name=handle,
                avatar=DEFAULT_AVATAR,
            )
        )
        self.store.focus(contact.id)
        if self.session.is_ready:
            try:
                await self.session.connect(handle, contact.id)
            except TransportError as exc:
                emit_notice(
                    self.event_bus,
                    f"'{handle}' is not reachable right now: {exc}",
                    level="warning",
                    source="contacts",
                )
        return contact

    def focus(self, contact_id: str | None) -> None:
        if contact_id is not None and self.store.get_contact(contact_id) is None:
            raise ContactError(f"Unknown contact '{contact_id}'.")
        self.store.focus(contact_id)

    def create_profile(
        self, username: str, display_name: str | None = None, avatar: str | None = None
    ) -> UserProfile:
        username = username.strip()
        if not username:
            raise ContactError("A username is required.")
        profile = UserProfile(
            username=username,
            display_name=(display_name or "").strip() or username,
            avatar=avatar or DEFAULT_AVATAR,
        )
        self.store.set_profile(profile)
        return profile

    async def update_profile(
        self,
        username: str | None = None,
        display_name: str | None = None,
        avatar: str | None = None,
    ) -> UserProfile:
        current = self.store.profile
        if current is None:
            raise ContactError("No local profile to update.")
        update: dict[str, Any] = {}
        if username is not None:
            if not username.strip():
                raise ContactError("Username cannot be empty.")
            update["username"] = username.strip()
        if display_name is not None:
            if not display_name.strip():
                raise ContactError("Display name cannot be empty.")
            update["display_name"] = display_name.strip()
        if avatar is not None:
            update["avatar"] = avatar or DEFAULT_AVATAR

        profile = current.model_copy(update=update)
        self.store.set_profile(profile)
        sent = await self.handshake.broadcast_profile()
        logger.info("Profile updated and sent to %d peer(s)", sent)
        return profile

    def set_theme(self, contact_id: str, theme_id: str) -> ChatTheme:
        preset = PRESET_THEMES.get(theme_id)
        if preset is None:
            raise ContactError(
                f"Unknown theme '{theme_id}'. Try: {', '.join(sorted(PRESET_THEMES))}"
            )
        theme = ChatTheme(id=theme_id, **preset)
        self._apply_theme(contact_id, theme)
        return theme

    def set_custom_background(self, contact_id: str, image: Attachment) -> ChatTheme:
        theme = ChatTheme(id=CUSTOM_THEME_ID, type="image", value=image.to_data_url())
        self._apply_theme(contact_id, theme)
        return theme

    def _apply_theme(self, contact_id: str, theme: ChatTheme) -> None:
        if self.store.get_contact(contact_id) is None:
            raise ContactError(f"Unknown contact '{contact_id}'.")
        self.store.set_theme(contact_id, theme)

    async def reset_local_data(self) -> None:
        await self.session.stop()
        self.store.reset()
        logger.info("Local chat data removed")
