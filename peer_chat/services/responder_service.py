from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib import error as urlerror
from urllib import request as urlrequest

from peer_chat.constants import (
    AI_HTTP_TIMEOUT_SECONDS,
    CHAT_VOICE_PROMPT,
    DEFAULT_AUDIO_MIME,
    DEFAULT_IMAGE_MIME,
    DEFAULT_PERSONA,
    EDITOR_DONE_REPLY,
    EDITOR_FAILED_REPLY,
    EDITOR_NEEDS_PROMPT_REPLY,
    EDITOR_NO_IMAGE_REPLY,
    GEMINI_CHAT_MODEL,
    GEMINI_EDITOR_MODEL,
    GEMINI_VISION_MODEL,
    SELF_ID,
    VISION_AUDIO_PROMPT,
    VISION_DEFAULT_PROMPT,
    VISION_NO_IMAGE_REPLY,
)
from peer_chat.errors import ResponderError
from peer_chat.media import split_data_url
from peer_chat.models import Contact, Message, MessageType, ResponderReply
from peer_chat.providers.base import ProviderClient
from peer_chat.providers.gemini import inline_part, text_part

logger = logging.getLogger(__name__)


def post_json_request(
    url: str, headers: dict[str, str], payload: dict[str, Any]
) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    request = urlrequest.Request(
        url=url,
        data=body,
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urlrequest.urlopen(request, timeout=AI_HTTP_TIMEOUT_SECONDS) as response:
            raw = response.read().decode("utf-8")
            data = json.loads(raw) if raw else {}
            if isinstance(data, dict):
                return data
            return {}
    except urlerror.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise RuntimeError(f"HTTP {exc.code} from provider. {detail[:200]}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise RuntimeError(f"Provider request failed: {exc}") from exc


def _latest(messages: list[Message], kind: MessageType) -> Message | None:
    for message in reversed(messages):
        if message.type == kind:
            return message
    return None


def _latest_self_image(history: list[Message]) -> Message | None:
    for message in reversed(history):
        if message.sender_id == SELF_ID and message.type == MessageType.IMAGE:
            return message
    return None


def message_part(message: Message) -> dict[str, Any]:
    if message.type == MessageType.TEXT:
        return text_part(message.content)
    default_mime = (
        DEFAULT_IMAGE_MIME if message.type == MessageType.IMAGE else DEFAULT_AUDIO_MIME
    )
    mime, data = split_data_url(message.content, default_mime)
    if message.meta is not None and message.meta.mime_type:
        mime = message.meta.mime_type
    return inline_part(mime, data)


class GeminiResponder:
    """Produces bot replies for vision, editor and persona-chat contacts."""

    def __init__(
        self,
        settings: dict[str, Any],
        client: ProviderClient,
        post_json: Any = post_json_request,
    ):
        self.settings = settings
        self.client = client
        self.post_json = post_json

    async def respond(
        self, contact: Contact, history: list[Message], turn: list[Message]
    ) -> ResponderReply:
        return await asyncio.to_thread(self.respond_sync, contact, history, turn)

    def respond_sync(
        self, contact: Contact, history: list[Message], turn: list[Message]
    ) -> ResponderReply:
        api_key = str(self.settings.get("api_key", "")).strip()
        if not api_key:
            raise ResponderError("Gemini API key is not configured.")
        try:
            if contact.bot_type == "vision":
                return self._vision(api_key, contact, history, turn)
            if contact.bot_type == "editor":
                return self._editor(api_key, history, turn)
            return self._chat(api_key, contact, history, turn)
        except RuntimeError as exc:
            raise ResponderError(f"Bot '{contact.username}' failed: {exc}") from exc

    def _model(self, key: str, default: str) -> str:
        return str(self.settings.get(key) or default)

    def _vision(
        self,
        api_key: str,
        contact: Contact,
        history: list[Message],
        turn: list[Message],
    ) -> ResponderReply:
        image = _latest(turn, MessageType.IMAGE) or _latest_self_image(history)
        audio = _latest(turn, MessageType.AUDIO)
        text = _latest(turn, MessageType.TEXT)
        if image is not None:
            prompt = text.content if text is not None else VISION_DEFAULT_PROMPT
            answer = self.client.generate_text(
                api_key=api_key,
                model=self._model("vision_model", GEMINI_VISION_MODEL),
                contents=[
                    {"role": "user", "parts": [message_part(image), text_part(prompt)]}
                ],
                post_json_request=self.post_json,
            )
            return ResponderReply(text=answer)
        if audio is not None:
            answer = self.client.generate_text(
                api_key=api_key,
                model=self._model("chat_model", GEMINI_CHAT_MODEL),
                contents=[
                    {
                        "role": "user",
                        "parts": [message_part(audio), text_part(VISION_AUDIO_PROMPT)],
                    }
                ],
                post_json_request=self.post_json,
                system_instruction=contact.persona or DEFAULT_PERSONA,
            )
            return ResponderReply(text=answer)
        return ResponderReply(text=VISION_NO_IMAGE_REPLY)

    def _editor(
        self, api_key: str, history: list[Message], turn: list[Message]
    ) -> ResponderReply:
        image = _latest(turn, MessageType.IMAGE) or _latest_self_image(history)
        text = _latest(turn, MessageType.TEXT)
        if image is None:
            return ResponderReply(text=EDITOR_NO_IMAGE_REPLY)
        if text is None:
            return ResponderReply(text=EDITOR_NEEDS_PROMPT_REPLY)

        parts = self.client.generate_content(
            api_key=api_key,
            model=self._model("editor_model", GEMINI_EDITOR_MODEL),
            contents=[
                {"role": "user", "parts": [message_part(image), text_part(text.content)]}
            ],
            post_json_request=self.post_json,
        )
        image_data = None
        chunks: list[str] = []
        for part in parts:
            inline = part.get("inline_data")
            if isinstance(inline, dict):
                mime = str(inline.get("mime_type") or DEFAULT_IMAGE_MIME)
                image_data = f"data:{mime};base64,{inline['data']}"
            elif part.get("text"):
                chunks.append(str(part["text"]))
        reply_text = "".join(chunks).strip()
        if not reply_text:
            reply_text = EDITOR_DONE_REPLY if image_data else EDITOR_FAILED_REPLY
        return ResponderReply(text=reply_text, image_data=image_data)

    def _chat(
        self,
        api_key: str,
        contact: Contact,
        history: list[Message],
        turn: list[Message],
    ) -> ResponderReply:
        contents = [
            {
                "role": "user" if message.sender_id == SELF_ID else "model",
                "parts": [message_part(message)],
            }
            for message in history
        ]
        voice_only = bool(turn) and all(m.type == MessageType.AUDIO for m in turn)
        if voice_only and contents:
            contents[-1]["parts"].append(text_part(CHAT_VOICE_PROMPT))
        answer = self.client.generate_text(
            api_key=api_key,
            model=self._model("chat_model", GEMINI_CHAT_MODEL),
            contents=contents,
            post_json_request=self.post_json,
            system_instruction=contact.persona or DEFAULT_PERSONA,
        )
        return ResponderReply(text=answer)
