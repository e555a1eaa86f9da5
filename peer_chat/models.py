from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from peer_chat.constants import DEFAULT_AVATAR


class MessageType(str, Enum):
    TEXT = "TEXT"
    IMAGE = "IMAGE"
    AUDIO = "AUDIO"


class MessageMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    mime_type: str | None = None
    prompt: str | None = None


class Message(BaseModel):
    """A chat message. Only the reaction map changes after creation."""

    model_config = ConfigDict(frozen=True)

    id: str
    sender_id: str
    content: str
    type: MessageType = MessageType.TEXT
    timestamp: int
    meta: MessageMeta | None = None
    reactions: dict[str, str] = Field(default_factory=dict)

    def with_reaction_toggled(self, identity: str, emoji: str) -> "Message":
        reactions = dict(self.reactions)
        if reactions.get(identity) == emoji:
            del reactions[identity]
        else:
            reactions[identity] = emoji
        return self.model_copy(update={"reactions": reactions})

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls.model_validate(data)


class Contact(BaseModel):
    id: str
    username: str
    name: str
    avatar: str = DEFAULT_AVATAR
    is_bot: bool = False
    bot_type: Literal["vision", "editor", "chat"] | None = None
    persona: str | None = None
    last_message: str | None = None
    last_seen: str | None = None
    unread_count: int = Field(default=0, ge=0)
    is_online: bool = False

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class UserProfile(BaseModel):
    username: str
    display_name: str
    avatar: str = DEFAULT_AVATAR

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


class ChatTheme(BaseModel):
    id: str
    type: Literal["color", "image", "gradient"]
    value: str


class ChatMetadata(BaseModel):
    theme: ChatTheme | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ResponderReply(BaseModel):
    text: str | None = None
    image_data: str | None = None


JsonDict = dict[str, Any]
