from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Literal

from peer_chat.transport.base import Connection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionKey:
    """Registry key: provisional (by network address) or resolved (by contact id)."""

    kind: Literal["address", "contact"]
    value: str

    @classmethod
    def for_address(cls, address: str) -> "ConnectionKey":
        return cls("address", address)

    @classmethod
    def for_contact(cls, contact_id: str) -> "ConnectionKey":
        return cls("contact", contact_id)

    @property
    def is_provisional(self) -> bool:
        return self.kind == "address"


class ConnectionRegistry:
    """Live connections, at most one per key.

    Registering under an occupied key replaces the previous entry without
    closing it; the caller owns that decision.
    """

    def __init__(self) -> None:
        self._connections: dict[ConnectionKey, Connection] = {}

    def register(self, key: ConnectionKey, connection: Connection) -> Connection | None:
        previous = self._connections.get(key)
        self._connections[key] = connection
        if previous is not None and previous is not connection:
            logger.info("Connection for %s:%s replaced.", key.kind, key.value)
            return previous
        return None

    def unregister(self, key: ConnectionKey) -> Connection | None:
        return self._connections.pop(key, None)

    def get(self, key: ConnectionKey) -> Connection | None:
        return self._connections.get(key)

    def get_for_contact(self, contact_id: str) -> Connection | None:
        return self._connections.get(ConnectionKey.for_contact(contact_id))

    def get_open_for_contact(self, contact_id: str) -> Connection | None:
        connection = self.get_for_contact(contact_id)
        if connection is not None and connection.is_open:
            return connection
        return None

    def rekey(
        self, old_key: ConnectionKey, new_key: ConnectionKey
    ) -> Connection | None:
        """Move the entry at ``old_key`` to ``new_key``; returns any displaced entry."""
        connection = self._connections.pop(old_key, None)
        if connection is None:
            return None
        return self.register(new_key, connection)

    def find_key_for_connection(self, connection: Connection) -> ConnectionKey | None:
        for key, candidate in self._connections.items():
            if candidate is connection:
                return key
        return None

    def open_connections(self) -> list[Connection]:
        unique: list[Connection] = []
        for connection in self._connections.values():
            if connection.is_open and all(c is not connection for c in unique):
                unique.append(connection)
        return unique

    def items(self) -> Iterator[tuple[ConnectionKey, Connection]]:
        return iter(list(self._connections.items()))

    def clear(self) -> list[Connection]:
        connections = list(self._connections.values())
        self._connections.clear()
        return connections

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, key: object) -> bool:
        return key in self._connections
