from peer_chat.repositories.chat_repository import ChatRepository
from peer_chat.repositories.config_repository import ConfigRepository
from peer_chat.repositories.kv_store import (
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
)

__all__ = [
    "ChatRepository",
    "ConfigRepository",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
]
