"""Wire format for events exchanged between peers.

Every frame is one JSON object ``{"type": ..., "payload": {...}}``. Payload
field names are camelCase on the wire so that any client speaking the same
tagged-union shape can interoperate.
"""

from __future__ import annotations

import json
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from peer_chat.errors import ProtocolError
from peer_chat.models import Message, MessageMeta, MessageType, UserProfile


class ProfileInfoPayload(BaseModel):
    username: str
    displayName: str
    avatar: str = ""


class WireMessageMeta(BaseModel):
    mimeType: str | None = None
    prompt: str | None = None


class MessagePayload(BaseModel):
    content: str
    messageType: MessageType
    timestamp: int
    meta: WireMessageMeta | None = None


class TypingPayload(BaseModel):
    isTyping: bool


class ReactionPayload(BaseModel):
    messageId: str
    emoji: str


class ProfileInfoEvent(BaseModel):
    type: Literal["PROFILE_INFO"] = "PROFILE_INFO"
    payload: ProfileInfoPayload


class MessageEvent(BaseModel):
    type: Literal["MESSAGE"] = "MESSAGE"
    payload: MessagePayload


class TypingEvent(BaseModel):
    type: Literal["TYPING"] = "TYPING"
    payload: TypingPayload


class ReactionEvent(BaseModel):
    type: Literal["REACTION"] = "REACTION"
    payload: ReactionPayload


WireEvent = Annotated[
    Union[ProfileInfoEvent, MessageEvent, TypingEvent, ReactionEvent],
    Field(discriminator="type"),
]

_wire_adapter: TypeAdapter[WireEvent] = TypeAdapter(WireEvent)


def decode_event(frame: str | bytes) -> WireEvent:
    try:
        data = json.loads(frame)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"Frame is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ProtocolError("Frame is not a JSON object.")
    try:
        return _wire_adapter.validate_python(data)
    except ValidationError as exc:
        raise ProtocolError(f"Invalid event: {exc.error_count()} error(s)") from exc


def encode_event(event: WireEvent) -> str:
    return event.model_dump_json(exclude_none=True)


def profile_info_event(profile: UserProfile) -> ProfileInfoEvent:
    return ProfileInfoEvent(
        payload=ProfileInfoPayload(
            username=profile.username,
            displayName=profile.display_name,
            avatar=profile.avatar,
        )
    )


def message_event(message: Message) -> MessageEvent:
    meta = None
    if message.meta is not None and (message.meta.mime_type or message.meta.prompt):
        meta = WireMessageMeta(
            mimeType=message.meta.mime_type, prompt=message.meta.prompt
        )
    return MessageEvent(
        payload=MessagePayload(
            content=message.content,
            messageType=message.type,
            timestamp=message.timestamp,
            meta=meta,
        )
    )


def meta_from_wire(meta: WireMessageMeta | None) -> MessageMeta | None:
    if meta is None or (meta.mimeType is None and meta.prompt is None):
        return None
    return MessageMeta(mime_type=meta.mimeType, prompt=meta.prompt)


def typing_event(is_typing: bool) -> TypingEvent:
    return TypingEvent(payload=TypingPayload(isTyping=is_typing))


def reaction_event(message_id: str, emoji: str) -> ReactionEvent:
    return ReactionEvent(payload=ReactionPayload(messageId=message_id, emoji=emoji))
