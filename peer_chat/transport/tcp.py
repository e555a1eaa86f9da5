from __future__ import annotations

import asyncio
import errno
import json
import logging
from collections.abc import AsyncIterator, Callable

from peer_chat.constants import (
    CONNECT_TIMEOUT_SECONDS,
    HELLO_TIMEOUT_SECONDS,
    MAX_FRAME_BYTES,
)
from peer_chat.errors import AddressInUseError, PeerUnreachableError, TransportError

logger = logging.getLogger(__name__)


def _hello_frame(address: str) -> bytes:
    return (json.dumps({"hello": address}) + "\n").encode("utf-8")


def _parse_hello(line: bytes) -> str | None:
    try:
        data = json.loads(line)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    address = data.get("hello")
    if not isinstance(address, str) or not address:
        return None
    return address


class TcpConnection:
    def __init__(
        self, peer: str, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ):
        self.peer = peer
        self._reader = reader
        self._writer = writer
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open and not self._writer.is_closing()

    async def send(self, frame: str) -> None:
        if not self.is_open:
            raise TransportError(f"Connection to '{self.peer}' is closed.")
        try:
            self._writer.write(frame.replace("\n", " ").encode("utf-8") + b"\n")
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            self._open = False
            raise TransportError(f"Send to '{self.peer}' failed: {exc}") from exc

    async def close(self) -> None:
        if not self._open:
            return
        self._open = False
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass

    async def __aiter__(self) -> AsyncIterator[str]:
        try:
            while self._open:
                try:
                    line = await self._reader.readline()
                except (ConnectionError, OSError, ValueError) as exc:
                    # ValueError: the peer sent a line over the stream limit.
                    logger.warning("Read from %s failed: %s", self.peer, exc)
                    return
                if not line:
                    return
                text = line.decode("utf-8", errors="replace").strip()
                if text:
                    yield text
        finally:
            await self.close()


class TcpEndpoint:
    def __init__(
        self,
        address: str,
        directory: dict[str, tuple[str, int]],
        connect_timeout_seconds: float,
    ):
        self.address = address
        self.directory = directory
        self.connect_timeout_seconds = connect_timeout_seconds
        self._server: asyncio.AbstractServer | None = None
        self._handler: Callable[[TcpConnection], None] | None = None

    def on_incoming_connection(self, handler: Callable[[TcpConnection], None]) -> None:
        self._handler = handler

    async def connect(self, address: str) -> TcpConnection:
        target = self.directory.get(address)
        if target is None:
            raise PeerUnreachableError(address, "not in peer directory")
        host, port = target
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, limit=MAX_FRAME_BYTES),
                timeout=self.connect_timeout_seconds,
            )
        except (asyncio.TimeoutError, OSError) as exc:
            raise PeerUnreachableError(address, str(exc) or "timed out") from exc
        writer.write(_hello_frame(self.address))
        try:
            await writer.drain()
        except (ConnectionError, OSError) as exc:
            writer.close()
            raise PeerUnreachableError(address, str(exc)) from exc
        return TcpConnection(address, reader, writer)

    async def _accept(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            line = await asyncio.wait_for(
                reader.readline(), timeout=HELLO_TIMEOUT_SECONDS
            )
        except (asyncio.TimeoutError, ConnectionError, OSError, ValueError):
            line = b""
        address = _parse_hello(line)
        if address is None or self._handler is None:
            logger.warning("Rejected inbound connection without a valid hello.")
            writer.close()
            return
        self._handler(TcpConnection(address, reader, writer))

    @property
    def port(self) -> int | None:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def listen(self, host: str, port: int) -> None:
        self._server = await asyncio.start_server(
            self._accept, host, port, limit=MAX_FRAME_BYTES
        )

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None


class TcpNetwork:
    """Peers reachable over TCP, located through a static directory.

    ``directory`` maps derived addresses to ``(host, port)``. The local
    endpoint listens on ``listen_host:listen_port``; a second client on the
    same port surfaces as ``AddressInUseError``.
    """

    def __init__(
        self,
        directory: dict[str, tuple[str, int]] | None = None,
        listen_host: str = "0.0.0.0",
        listen_port: int = 0,
        connect_timeout_seconds: float = CONNECT_TIMEOUT_SECONDS,
    ):
        self.directory = dict(directory or {})
        self.listen_host = listen_host
        self.listen_port = listen_port
        self.connect_timeout_seconds = connect_timeout_seconds

    async def bind(self, address: str) -> TcpEndpoint:
        endpoint = TcpEndpoint(address, self.directory, self.connect_timeout_seconds)
        try:
            await endpoint.listen(self.listen_host, self.listen_port)
        except OSError as exc:
            if exc.errno == errno.EADDRINUSE:
                raise AddressInUseError(address) from exc
            raise TransportError(f"Failed to listen for '{address}': {exc}") from exc
        logger.info(
            "Listening as %s on %s:%s", address, self.listen_host, self.listen_port
        )
        return endpoint
