from __future__ import annotations

import logging
from typing import Any

from peer_chat.events import AppEvent, NoticeEvent, StateChangedEvent

logger = logging.getLogger(__name__)

_NOTICE_LOG_LEVELS = {"warning": logging.WARNING, "error": logging.ERROR}


def _try_publish(bus: Any, event: AppEvent, *, critical: bool = False) -> bool:
    if bus is None:
        return False
    try:
        return bool(bus.publish(event, critical=critical))
    except Exception:
        logger.exception("Could not publish %s from %s", event.topic, event.source)
        return False


def emit_state_changed(
    bus: Any, change: str, contact_id: str | None = None, source: str = "store"
) -> bool:
    event = StateChangedEvent(source=source, change=change, contact_id=contact_id)
    return _try_publish(bus, event)


def emit_notice(
    bus: Any, text: str, level: str = "info", source: str = "service"
) -> None:
    """Publish a user-facing notice; log it when nobody can receive it."""
    event = NoticeEvent(source=source, text=text, level=level)
    if _try_publish(bus, event, critical=True):
        return
    record = getattr(bus, "record_fallback", None)
    if callable(record):
        record()
    logger.log(_NOTICE_LOG_LEVELS.get(level, logging.INFO), "%s", text)
