import asyncio
import json
import logging

import pytest

from peer_chat.constants import BOT_DIRECTORY, SELF_ID
from peer_chat.errors import ContactError, ResponderError, TransportError
from peer_chat.media import Attachment
from peer_chat.models import Contact, Message, MessageType, ResponderReply, UserProfile
from peer_chat.registry import ConnectionKey, ConnectionRegistry
from peer_chat.services import HandshakeService, OutboundPipeline
from peer_chat.state import ChatStateStore


class FakeConnection:
    def __init__(self, peer: str, fail: bool = False):
        self.peer = peer
        self.is_open = True
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, frame: str) -> None:
        if self.fail:
            raise TransportError("link dropped")
        self.sent.append(json.loads(frame))

    async def close(self) -> None:
        self.is_open = False


class FakeResponder:
    def __init__(self, reply: ResponderReply | None = None, error: Exception | None = None):
        self.reply = reply or ResponderReply(text="ok")
        self.error = error
        self.calls: list[tuple[Contact, list[Message], list[Message]]] = []
        self.typing_seen: list[bool] = []
        self.store: ChatStateStore | None = None

    async def respond(self, contact, history, turn):
        self.calls.append((contact, history, turn))
        if self.store is not None:
            self.typing_seen.append(self.store.is_bot_typing(contact.id))
        if self.error is not None:
            raise self.error
        return self.reply


def _pipeline(responder=None):
    store = ChatStateStore()
    store.set_profile(UserProfile(username="me_user", display_name="Me"))
    registry = ConnectionRegistry()
    handshake = HandshakeService(store, registry)
    if responder is not None:
        responder.store = store
    return store, registry, OutboundPipeline(store, registry, handshake, responder)


def _bot(kind: str) -> Contact:
    entry = next(e for e in BOT_DIRECTORY if e["bot_type"] == kind)
    return Contact(**entry)


def test_double_reaction_toggle_sends_two_events_and_clears():
    store, registry, pipeline = _pipeline()
    store.add_contact(Contact(id="user-1", username="nova", name="Nova"))
    store.append_message(
        "user-1", Message(id="m1", sender_id="user-1", content="hi", timestamp=1)
    )
    conn = FakeConnection("nova")
    registry.register(ConnectionKey.for_contact("user-1"), conn)

    async def scenario():
        await pipeline.react("user-1", "m1", "❤️")
        await pipeline.react("user-1", "m1", "❤️")

    asyncio.run(scenario())

    assert SELF_ID not in store.find_message("user-1", "m1").reactions
    assert [frame["type"] for frame in conn.sent] == ["REACTION", "REACTION"]
    assert all(frame["payload"] == {"messageId": "m1", "emoji": "❤️"} for frame in conn.sent)


def test_reaction_on_unknown_message_sends_nothing():
    store, registry, pipeline = _pipeline()
    store.add_contact(Contact(id="user-1", username="nova", name="Nova"))
    conn = FakeConnection("nova")
    registry.register(ConnectionKey.for_contact("user-1"), conn)

    assert asyncio.run(pipeline.react("user-1", "nope", "🔥")) is None
    assert conn.sent == []


def test_vision_bot_gets_image_and_text_without_network_traffic():
    responder = FakeResponder(ResponderReply(text="A cat on a sofa."))
    store, registry, pipeline = _pipeline(responder)
    bot = store.add_contact(_bot("vision"))
    stray = FakeConnection(bot.username)
    registry.register(ConnectionKey.for_contact(bot.id), stray)

    turn = asyncio.run(
        pipeline.send_message(
            bot.id, text="What is it?", image=Attachment(b"\x89PNG", "image/png")
        )
    )

    history = store.history(bot.id)
    assert [m.type for m in turn] == [MessageType.IMAGE, MessageType.TEXT]
    assert [(m.sender_id, m.type) for m in history] == [
        (SELF_ID, MessageType.IMAGE),
        (SELF_ID, MessageType.TEXT),
        (bot.id, MessageType.TEXT),
    ]
    assert history[0].content.startswith("data:image/png;base64,")
    assert history[0].meta.mime_type == "image/png"
    assert history[2].content == "A cat on a sofa."
    assert stray.sent == []
    assert len(responder.calls) == 1
    _contact, seen_history, seen_turn = responder.calls[0]
    assert seen_turn[0].type == MessageType.IMAGE
    assert [m.id for m in seen_history] == [m.id for m in turn]
    assert responder.typing_seen == [True]
    assert store.is_bot_typing(bot.id) is False


def test_editor_reply_appends_image_before_text():
    responder = FakeResponder(
        ResponderReply(text="Here you go", image_data="data:image/jpeg;base64,AAA")
    )
    store, _registry, pipeline = _pipeline(responder)
    bot = store.add_contact(_bot("editor"))

    asyncio.run(
        pipeline.send_message(
            bot.id, text="make it blue", image=Attachment(b"img", "image/jpeg")
        )
    )

    replies = [m for m in store.history(bot.id) if m.sender_id == bot.id]
    assert [(m.type, m.content) for m in replies] == [
        (MessageType.IMAGE, "data:image/jpeg;base64,AAA"),
        (MessageType.TEXT, "Here you go"),
    ]


def test_responder_failure_appends_nothing_and_clears_typing(caplog):
    responder = FakeResponder(error=ResponderError("quota"))
    store, _registry, pipeline = _pipeline(responder)
    bot = store.add_contact(_bot("chat"))

    with caplog.at_level(logging.ERROR):
        asyncio.run(pipeline.send_message(bot.id, text="hello"))

    assert [m.sender_id for m in store.history(bot.id)] == [SELF_ID]
    assert store.is_bot_typing(bot.id) is False
    assert "Responder for" in caplog.text


def test_human_send_transmits_each_part_then_refreshes_profile():
    store, registry, pipeline = _pipeline()
    store.add_contact(Contact(id="user-1", username="nova", name="Nova"))
    conn = FakeConnection("nova")
    registry.register(ConnectionKey.for_contact("user-1"), conn)

    asyncio.run(
        pipeline.send_message(
            "user-1",
            text="listen",
            image=Attachment(b"i", "image/png"),
            audio=Attachment(b"a", "audio/webm"),
        )
    )

    assert [frame["type"] for frame in conn.sent] == [
        "MESSAGE",
        "MESSAGE",
        "MESSAGE",
        "PROFILE_INFO",
    ]
    assert [frame["payload"]["messageType"] for frame in conn.sent[:3]] == [
        "IMAGE",
        "AUDIO",
        "TEXT",
    ]
    assert conn.sent[1]["payload"]["meta"] == {"mimeType": "audio/webm"}
    assert conn.sent[3]["payload"]["username"] == "me_user"
    assert store.get_contact("user-1").unread_count == 0


def test_send_failure_keeps_local_copies(caplog):
    store, registry, pipeline = _pipeline()
    store.add_contact(Contact(id="user-1", username="nova", name="Nova"))
    registry.register(ConnectionKey.for_contact("user-1"), FakeConnection("nova", fail=True))

    with caplog.at_level(logging.WARNING):
        turn = asyncio.run(
            pipeline.send_message(
                "user-1", text="hi", image=Attachment(b"i", "image/png")
            )
        )

    assert len(turn) == 2
    assert [m.type for m in store.history("user-1")] == [
        MessageType.IMAGE,
        MessageType.TEXT,
    ]
    assert caplog.text.count("link dropped") == 2


def test_offline_contact_keeps_message_locally():
    store, _registry, pipeline = _pipeline()
    store.add_contact(Contact(id="user-1", username="nova", name="Nova"))

    turn = asyncio.run(pipeline.send_message("user-1", text="later"))

    assert [m.content for m in turn] == ["later"]
    assert store.get_contact("user-1").last_message == "later"


def test_empty_send_is_noop_and_unknown_contact_raises():
    store, _registry, pipeline = _pipeline()
    store.add_contact(Contact(id="user-1", username="nova", name="Nova"))

    assert asyncio.run(pipeline.send_message("user-1", text="   ")) == []
    assert store.history("user-1") == []
    with pytest.raises(ContactError):
        asyncio.run(pipeline.send_message("user-404", text="hi"))


def test_typing_only_goes_to_connected_humans():
    store, registry, pipeline = _pipeline()
    store.add_contact(Contact(id="user-1", username="nova", name="Nova"))
    bot = store.add_contact(_bot("chat"))
    conn = FakeConnection("nova")

    assert asyncio.run(pipeline.send_typing("user-1", True)) is False
    registry.register(ConnectionKey.for_contact("user-1"), conn)
    assert asyncio.run(pipeline.send_typing("user-1", True)) is True
    assert asyncio.run(pipeline.send_typing(bot.id, True)) is False
    assert conn.sent == [{"type": "TYPING", "payload": {"isTyping": True}}]
