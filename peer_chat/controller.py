from __future__ import annotations

import asyncio
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from peer_chat.commands.registry import CommandRegistry
from peer_chat.constants import MAX_NOTICES, MAX_RENDERED_MESSAGES, SELF_ID
from peer_chat.errors import PeerChatError
from peer_chat.event_bus import EventBus
from peer_chat.events import NoticeEvent, StateChangedEvent
from peer_chat.models import Contact, Message, MessageType

if TYPE_CHECKING:
    from chat import PeerChatApp

MESSAGE_LINE_RE = re.compile(r"^(\s*\d+) (\d\d:\d\d) ([^:]+):(.*)$")

def format_message(index: int, message: Message, contact: Contact | None) -> str:
    stamp = datetime.fromtimestamp(message.timestamp / 1000).strftime("%H:%M")
    if message.sender_id == SELF_ID:
        author = "you"
    else:
        author = contact.name if contact is not None else message.sender_id
    if message.type == MessageType.IMAGE:
        mime = message.meta.mime_type if message.meta and message.meta.mime_type else ""
        body = f"[image {mime}]" if mime else "[image]"
    elif message.type == MessageType.AUDIO:
        body = "[voice message]"
    else:
        body = message.content
    line = f"{index:>3} {stamp} {author}: {body}"
    if message.reactions:
        line += "  " + " ".join(message.reactions.values())
    return line


class ChatController:
    def __init__(self, app: "PeerChatApp"):
        self.app = app
        self.command_handlers: dict[str, Any] = {}
        self.notices: list[str] = []
        self.loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()
        self._draft_active = False

    def build_command_handlers(self) -> dict[str, Any]:
        self.command_handlers = CommandRegistry(self).build()
        return self.command_handlers

    def command_names(self) -> list[str]:
        if not self.command_handlers:
            self.build_command_handlers()
        return list(self.command_handlers)

    def register_event_handlers(self, bus: EventBus) -> None:
        bus.subscribe(StateChangedEvent, self.on_state_changed_event)
        bus.subscribe(NoticeEvent, self.on_notice_event)

    def on_state_changed_event(self, _event: StateChangedEvent) -> None:
        self._schedule_refresh()

    def on_notice_event(self, event: NoticeEvent) -> None:
        prefix = "!" if event.level == "error" else "*"
        self._remember_notice(f"{prefix} {event.text}")
        self._schedule_refresh()

    def notify(self, text: str) -> None:
        self._remember_notice(f"* {text}")
        self.refresh()

    def _remember_notice(self, text: str) -> None:
        self.notices = [*self.notices, text][-MAX_NOTICES:]

    def _schedule_refresh(self) -> None:
        # Bus handlers run on the worker thread; rendering belongs to the loop.
        if self.loop is not None and self.loop.is_running():
            self.loop.call_soon_threadsafe(self.refresh)
        else:
            self.refresh()

    def handle_input(self, text: str) -> None:
        """Entry point for the view; runs the command without blocking input."""
        task = asyncio.ensure_future(self.submit(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def handle_draft(self, text: str) -> None:
        if bool(text.strip()) == self._draft_active:
            return
        task = asyncio.ensure_future(self.on_draft_changed(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def submit(self, text: str) -> None:
        text = text.strip()
        if not text:
            return
        await self.on_draft_changed("")
        if text.startswith("/"):
            if not self.command_handlers:
                self.build_command_handlers()
            parts = text.split(" ", 1)
            command = parts[0].lower()
            args = parts[1].strip() if len(parts) > 1 else ""
            handler = self.command_handlers.get(command)
            if handler is None:
                self.notify(f"Unknown command '{command}'. Try /help.")
                return
            try:
                await handler(args)
            except PeerChatError as exc:
                self.notify(str(exc))
            return

        contact_id = self.app.store.focused_contact_id
        if contact_id is None:
            self.notify("Open a conversation first: /open <name>")
            return
        try:
            await self.app.outbound_service.send_message(contact_id, text=text)
        except PeerChatError as exc:
            self.notify(str(exc))

    async def on_draft_changed(self, text: str) -> None:
        contact_id = self.app.store.focused_contact_id
        active = bool(text.strip())
        if contact_id is None or active == self._draft_active:
            return
        self._draft_active = active
        await self.app.outbound_service.send_typing(contact_id, active)

    def resolve_contact(self, ref: str) -> Contact | None:
        """Find a contact by list position, username or display name."""
        ref = ref.strip()
        contacts = self.app.store.contacts
        if ref.isdigit():
            index = int(ref) - 1
            return contacts[index] if 0 <= index < len(contacts) else None
        contact = self.app.store.find_contact_by_username(ref, case_sensitive=False)
        if contact is not None:
            return contact
        lowered = ref.lower()
        return next((c for c in contacts if c.name.lower() == lowered), None)

    def render_conversation(self) -> tuple[str, str]:
        store = self.app.store
        contact_id = store.focused_contact_id
        lines: list[str] = []
        title = "Conversation"
        if contact_id is not None:
            contact = store.get_contact(contact_id)
            if contact is not None:
                state = "online" if contact.is_online or contact.is_bot else "offline"
                title = f"{contact.name} (@{contact.username}, {state})"
            history = store.history(contact_id)
            start = max(0, len(history) - MAX_RENDERED_MESSAGES)
            for index in range(start, len(history)):
                lines.append(format_message(index + 1, history[index], contact))
            if store.is_bot_typing(contact_id) or store.is_peer_typing(contact_id):
                name = contact.name if contact is not None else "peer"
                lines.append(f"    {name} is typing...")
        if self.notices:
            if lines:
                lines.append("")
            lines.extend(self.notices[-5:])
        return "\n".join(lines), title

    def lex_line(self, line: str) -> list[tuple[str, str]]:
        match = MESSAGE_LINE_RE.match(line)
        if match is None:
            if line.startswith(("* ", "! ")) or line.endswith("is typing..."):
                return [("class:notice", line)]
            return [("", line)]
        number, stamp, author, body = match.groups()
        author_style = "class:self" if author == "you" else "class:peer"
        return [
            ("class:timestamp", f"{number} {stamp} "),
            (author_style, author),
            ("", f":{body}"),
        ]

    def render_sidebar(self) -> list[tuple[str, str]]:
        store = self.app.store
        fragments: list[tuple[str, str]] = []
        profile = store.profile
        if profile is not None:
            state = self.app.session_service.state.value
            fragments.append(("fg:#aaaaaa", f"@{profile.username} [{state}]"))
            fragments.append(("", "\n\n"))
        for position, contact in enumerate(store.contacts, start=1):
            marker = "*" if contact.is_online or contact.is_bot else " "
            style = "class:online" if marker == "*" else ""
            focused = contact.id == store.focused_contact_id
            fragments.append((style, f"{marker}{position:>2} "))
            fragments.append(("bold" if focused else "", contact.name[:22]))
            if contact.unread_count:
                fragments.append(("class:unread", f" ({contact.unread_count})"))
            if contact.last_message:
                fragments.append(("class:notice", f"\n     {contact.last_message[:26]}"))
            fragments.append(("", "\n"))
        return fragments

    def refresh(self) -> None:
        view = self.app.view
        if view is None:
            return
        text, title = self.render_conversation()
        view.set_output(text, title)
        view.set_sidebar(self.render_sidebar())
