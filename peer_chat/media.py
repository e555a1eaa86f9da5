from __future__ import annotations

import asyncio
import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Attachment:
    data: bytes
    mime_type: str

    def to_data_url(self) -> str:
        return encode_data_url(self.data, self.mime_type)


def encode_data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def split_data_url(value: str, default_mime: str) -> tuple[str, str]:
    """Return ``(mime_type, base64_payload)`` for a data URL.

    Values without a ``data:`` header are assumed to be bare base64.
    """
    if not value.startswith("data:") or "," not in value:
        return default_mime, value
    header, payload = value.split(",", 1)
    mime = header[len("data:") :].split(";", 1)[0].strip()
    return mime or default_mime, payload


def _read_attachment_sync(path: Path, default_mime: str) -> Attachment:
    guessed, _encoding = mimetypes.guess_type(path.name)
    return Attachment(data=path.read_bytes(), mime_type=guessed or default_mime)


async def read_attachment(path: str | Path, default_mime: str) -> Attachment:
    return await asyncio.to_thread(_read_attachment_sync, Path(path), default_mime)
