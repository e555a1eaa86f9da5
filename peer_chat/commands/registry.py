from __future__ import annotations

from typing import TYPE_CHECKING, Any

from peer_chat.constants import (
    DEFAULT_AUDIO_MIME,
    DEFAULT_IMAGE_MIME,
    DEFAULT_REACTION,
    PRESET_THEMES,
)
from peer_chat.errors import PeerChatError
from peer_chat.media import read_attachment

if TYPE_CHECKING:
    from peer_chat.controller import ChatController

HELP_TEXT = (
    "/add <name>  /open <name|#>  /close  /list  /react <#> [emoji]  "
    "/image <path> [caption]  /audio <path>  /theme [name]  /background <path>  "
    "/profile name|avatar|username <value>  /status  /reset  /quit"
)


class CommandRegistry:
    def __init__(self, controller: "ChatController"):
        self.controller = controller
        self.app = controller.app

    def build(self) -> dict[str, Any]:
        return {
            "/add": self.command_add,
            "/open": self.command_open,
            "/close": self.command_close,
            "/list": self.command_list,
            "/react": self.command_react,
            "/image": self.command_image,
            "/audio": self.command_audio,
            "/theme": self.command_theme,
            "/background": self.command_background,
            "/profile": self.command_profile,
            "/status": self.command_status,
            "/reset": self.command_reset,
            "/help": self.command_help,
            "/quit": self.command_exit,
            "/exit": self.command_exit,
        }

    def _focused(self) -> str:
        contact_id = self.app.store.focused_contact_id
        if contact_id is None:
            raise PeerChatError("Open a conversation first: /open <name>")
        return contact_id

    async def command_add(self, args: str) -> None:
        if not args:
            self.controller.notify("Usage: /add <name>")
            return
        contact = await self.app.contact_service.add_contact(args)
        self.controller.notify(f"Added {contact.name}.")

    async def command_open(self, args: str) -> None:
        contact = self.controller.resolve_contact(args)
        if contact is None:
            self.controller.notify(f"No contact matches '{args}'.")
            return
        self.app.contact_service.focus(contact.id)

    async def command_close(self, _args: str) -> None:
        self.app.contact_service.focus(None)

    async def command_list(self, _args: str) -> None:
        contacts = self.app.store.contacts
        if not contacts:
            self.controller.notify("No contacts yet. Use /add <name>.")
            return
        rows = [
            f"{position}. {c.name} (@{c.username})"
            + (" online" if c.is_online else "")
            + (f" [{c.unread_count} unread]" if c.unread_count else "")
            for position, c in enumerate(contacts, start=1)
        ]
        self.controller.notify("Contacts: " + "; ".join(rows))

    async def command_react(self, args: str) -> None:
        contact_id = self._focused()
        parts = args.split()
        if not parts or not parts[0].isdigit():
            self.controller.notify("Usage: /react <message #> [emoji]")
            return
        history = self.app.store.history(contact_id)
        index = int(parts[0]) - 1
        if not 0 <= index < len(history):
            self.controller.notify(f"No message #{parts[0]}.")
            return
        emoji = parts[1] if len(parts) > 1 else DEFAULT_REACTION
        await self.app.outbound_service.react(contact_id, history[index].id, emoji)

    async def command_image(self, args: str) -> None:
        contact_id = self._focused()
        path, _, caption = args.partition(" ")
        if not path:
            self.controller.notify("Usage: /image <path> [caption]")
            return
        image = await read_attachment(path, DEFAULT_IMAGE_MIME)
        await self.app.outbound_service.send_message(
            contact_id, text=caption or None, image=image
        )

    async def command_audio(self, args: str) -> None:
        contact_id = self._focused()
        if not args:
            self.controller.notify("Usage: /audio <path>")
            return
        audio = await read_attachment(args, DEFAULT_AUDIO_MIME)
        await self.app.outbound_service.send_message(contact_id, audio=audio)

    async def command_theme(self, args: str) -> None:
        if not args:
            self.controller.notify(f"Available themes: {', '.join(PRESET_THEMES)}")
            return
        theme = self.app.contact_service.set_theme(self._focused(), args.lower())
        self.controller.notify(f"Theme set to {theme.id}.")

    async def command_background(self, args: str) -> None:
        contact_id = self._focused()
        if not args:
            self.controller.notify("Usage: /background <image path>")
            return
        image = await read_attachment(args, DEFAULT_IMAGE_MIME)
        self.app.contact_service.set_custom_background(contact_id, image)
        self.controller.notify("Custom background saved.")

    async def command_profile(self, args: str) -> None:
        field, _, value = args.partition(" ")
        value = value.strip()
        if field == "name":
            await self.app.contact_service.update_profile(display_name=value)
        elif field == "avatar":
            await self.app.contact_service.update_profile(avatar=value)
        elif field == "username":
            await self.app.contact_service.update_profile(username=value)
        else:
            profile = self.app.store.profile
            if profile is not None:
                self.controller.notify(
                    f"You are {profile.display_name} (@{profile.username})."
                )
            self.controller.notify("Usage: /profile name|avatar|username <value>")
            return
        self.controller.notify("Profile updated.")

    async def command_status(self, _args: str) -> None:
        session = self.app.session_service
        online = sum(1 for c in self.app.store.contacts if c.is_online and not c.is_bot)
        self.controller.notify(
            f"Endpoint {session.state.value} at {session.local_address or '-'}; "
            f"{online} peer(s) online."
        )

    async def command_reset(self, args: str) -> None:
        if args != "confirm":
            self.controller.notify("This deletes all local chats. Run /reset confirm")
            return
        await self.app.contact_service.reset_local_data()
        self.app.exit("reset")

    async def command_help(self, _args: str) -> None:
        self.controller.notify(HELP_TEXT)

    async def command_exit(self, _args: str) -> None:
        self.app.exit()
