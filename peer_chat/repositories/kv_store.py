from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Protocol
from uuid import uuid4

import portalocker

from peer_chat.constants import LOCK_TIMEOUT_SECONDS
from peer_chat.errors import PersistenceError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None:
        pass

    def set(self, key: str, value: bytes) -> None:
        pass

    def remove(self, key: str) -> None:
        pass


class MemoryKeyValueStore:
    """Dict-backed store; ``capacity_bytes`` mimics a browser storage quota."""

    def __init__(self, capacity_bytes: int | None = None):
        self.capacity_bytes = capacity_bytes
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        if self.capacity_bytes is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(value) > self.capacity_bytes:
                raise PersistenceError(
                    f"Storage quota exceeded writing '{key}' ({len(value)} bytes)."
                )
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """One file per key under ``root``; writes are locked and atomic."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]+", "_", key).strip(".")
        if not safe:
            raise PersistenceError(f"Invalid storage key '{key}'.")
        return self.root / f"{safe}.json"

    def get(self, key: str) -> bytes | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            logger.warning("Failed reading %s: %s", path, exc)
            return None

    def set(self, key: str, value: bytes) -> None:
        path = self._path_for(key)
        tmp_path = path.with_name(f".{path.name}.tmp-{os.getpid()}-{uuid4().hex[:8]}")
        lock_path = path.with_name(f".{path.name}.lock")
        try:
            os.makedirs(self.root, exist_ok=True)
            with portalocker.Lock(
                str(lock_path), mode="a", timeout=LOCK_TIMEOUT_SECONDS
            ):
                with open(tmp_path, "wb") as f:
                    f.write(value)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, path)
        except portalocker.exceptions.LockException as exc:
            raise PersistenceError(f"Timed out locking '{key}'.") from exc
        except OSError as exc:
            raise PersistenceError(f"Failed writing '{key}': {exc}") from exc
        finally:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                pass

    def remove(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed removing '{key}': {exc}") from exc
