import json

import pytest

from peer_chat.errors import ProtocolError
from peer_chat.models import Message, MessageMeta, MessageType, UserProfile
from peer_chat.protocol import (
    MessageEvent,
    ProfileInfoEvent,
    ReactionEvent,
    TypingEvent,
    decode_event,
    encode_event,
    message_event,
    meta_from_wire,
    profile_info_event,
    reaction_event,
    typing_event,
)


def test_decode_profile_and_message_frames():
    profile = decode_event(
        '{"type":"PROFILE_INFO","payload":{"username":"nova",'
        '"displayName":"Nova","avatar":"x"}}'
    )
    assert isinstance(profile, ProfileInfoEvent)
    assert profile.payload.displayName == "Nova"

    message = decode_event(
        '{"type":"MESSAGE","payload":{"content":"hi","messageType":"TEXT",'
        '"timestamp":1000}}'
    )
    assert isinstance(message, MessageEvent)
    assert message.payload.messageType == MessageType.TEXT
    assert message.payload.meta is None


def test_decode_typing_and_reaction_frames():
    typing = decode_event('{"type":"TYPING","payload":{"isTyping":true}}')
    assert isinstance(typing, TypingEvent)
    assert typing.payload.isTyping is True

    reaction = decode_event(
        json.dumps({"type": "REACTION", "payload": {"messageId": "m1", "emoji": "👍"}})
    )
    assert isinstance(reaction, ReactionEvent)
    assert reaction.payload.emoji == "👍"


@pytest.mark.parametrize(
    "frame",
    [
        "not json",
        "[1, 2]",
        '{"type":"CALL_OFFER","payload":{}}',
        '{"type":"MESSAGE","payload":{"content":"hi"}}',
        '{"type":"TYPING"}',
        '{"payload":{"isTyping":true}}',
    ],
)
def test_decode_rejects_malformed_frames(frame):
    with pytest.raises(ProtocolError):
        decode_event(frame)


def test_encode_uses_camel_case_and_drops_empty_meta():
    message = Message(
        id="1",
        sender_id="me",
        content="hello",
        type=MessageType.TEXT,
        timestamp=1234,
    )
    data = json.loads(encode_event(message_event(message)))
    assert data == {
        "type": "MESSAGE",
        "payload": {"content": "hello", "messageType": "TEXT", "timestamp": 1234},
    }


def test_message_event_carries_attachment_mime_type():
    message = Message(
        id="2",
        sender_id="me",
        content="data:image/png;base64,AAAA",
        type=MessageType.IMAGE,
        timestamp=1,
        meta=MessageMeta(mime_type="image/png"),
    )
    event = decode_event(encode_event(message_event(message)))
    assert isinstance(event, MessageEvent)
    assert event.payload.meta is not None
    assert event.payload.meta.mimeType == "image/png"
    assert meta_from_wire(event.payload.meta) == MessageMeta(mime_type="image/png")
    assert meta_from_wire(None) is None


def test_builders_produce_expected_wire_shapes():
    profile = UserProfile(username="nova", display_name="Nova", avatar="x")
    assert json.loads(encode_event(profile_info_event(profile))) == {
        "type": "PROFILE_INFO",
        "payload": {"username": "nova", "displayName": "Nova", "avatar": "x"},
    }
    assert json.loads(encode_event(typing_event(False))) == {
        "type": "TYPING",
        "payload": {"isTyping": False},
    }
    assert json.loads(encode_event(reaction_event("m1", "🔥")))["payload"] == {
        "messageId": "m1",
        "emoji": "🔥",
    }
