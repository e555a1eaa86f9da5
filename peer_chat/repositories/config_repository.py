from __future__ import annotations

import json
import logging
import os
from typing import Any

from peer_chat.constants import (
    CONFIG_FILE,
    CONNECT_TIMEOUT_SECONDS,
    DEFAULT_DATA_DIR,
    DEFAULT_LISTEN_HOST,
    DEFAULT_LISTEN_PORT,
    DEFAULT_TRANSPORT,
    GEMINI_API_KEY_ENV,
    GEMINI_CHAT_MODEL,
    GEMINI_EDITOR_MODEL,
    GEMINI_VISION_MODEL,
)

logger = logging.getLogger(__name__)


class ConfigRepository:
    def __init__(self, config_file: str = CONFIG_FILE):
        self.config_file = config_file

    def load_config(self) -> dict[str, Any]:
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        return data
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning(
                    "Failed to load config from %s: %s", self.config_file, exc
                )
        return {}

    def get_default_config(self) -> dict[str, Any]:
        return {
            "data_dir": DEFAULT_DATA_DIR,
            "transport": DEFAULT_TRANSPORT,
            "listen_host": DEFAULT_LISTEN_HOST,
            "listen_port": DEFAULT_LISTEN_PORT,
            "peers": {},
            "connect_timeout_seconds": CONNECT_TIMEOUT_SECONDS,
            "gemini": {
                "api_key": "",
                "chat_model": GEMINI_CHAT_MODEL,
                "vision_model": GEMINI_VISION_MODEL,
                "editor_model": GEMINI_EDITOR_MODEL,
            },
        }

    def load_settings(self) -> dict[str, Any]:
        merged = self.get_default_config()
        loaded = self.load_config()

        data_dir = str(loaded.get("data_dir", "")).strip()
        if data_dir:
            merged["data_dir"] = data_dir
        transport = str(loaded.get("transport", "")).strip().lower()
        if transport in ("tcp", "loopback"):
            merged["transport"] = transport
        elif transport:
            logger.warning(
                "Unknown transport '%s'; using %s.", transport, merged["transport"]
            )
        listen_host = str(loaded.get("listen_host", "")).strip()
        if listen_host:
            merged["listen_host"] = listen_host
        listen_port = loaded.get("listen_port")
        if isinstance(listen_port, int) and 0 <= listen_port <= 65535:
            merged["listen_port"] = listen_port
        timeout = loaded.get("connect_timeout_seconds")
        if isinstance(timeout, (int, float)) and timeout > 0:
            merged["connect_timeout_seconds"] = float(timeout)

        peers = loaded.get("peers", {})
        if isinstance(peers, dict):
            for address, target in peers.items():
                parsed = self.parse_host_port(str(target))
                if parsed is None:
                    logger.warning(
                        "Ignoring peer '%s' with bad target '%s'.", address, target
                    )
                    continue
                merged["peers"][str(address)] = parsed

        gemini = loaded.get("gemini", {})
        if isinstance(gemini, dict):
            for field_name in ("api_key", "chat_model", "vision_model", "editor_model"):
                value = str(gemini.get(field_name, "")).strip()
                if value:
                    merged["gemini"][field_name] = value
        if not merged["gemini"]["api_key"]:
            merged["gemini"]["api_key"] = os.environ.get(
                GEMINI_API_KEY_ENV, ""
            ).strip()
        return merged

    def parse_host_port(self, value: str) -> tuple[str, int] | None:
        host, sep, port_text = value.strip().rpartition(":")
        if not sep or not host:
            return None
        try:
            port = int(port_text)
        except ValueError:
            return None
        if not 0 < port <= 65535:
            return None
        return host.strip("[]"), port
