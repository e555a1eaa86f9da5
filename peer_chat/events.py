from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field


class AppEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid4().hex)
    ts: str = Field(
        default_factory=lambda: datetime.now().isoformat(timespec="seconds")
    )
    topic: str
    source: str
    critical: bool = False
    retry_count: int = 0


class StateChangedEvent(AppEvent):
    """Published once per committed chat-state mutation."""

    topic: Literal["state_changed"] = "state_changed"
    change: str
    contact_id: str | None = None


class NoticeEvent(AppEvent):
    topic: Literal["notice"] = "notice"
    text: str
    level: Literal["info", "warning", "error"] = "info"
