from collections.abc import AsyncIterator, Callable
from typing import Protocol


class Connection(Protocol):
    peer: str

    @property
    def is_open(self) -> bool:
        pass

    async def send(self, frame: str) -> None:
        pass

    async def close(self) -> None:
        pass

    def __aiter__(self) -> AsyncIterator[str]:
        pass


class Endpoint(Protocol):
    address: str

    async def connect(self, address: str) -> Connection:
        pass

    def on_incoming_connection(self, handler: Callable[[Connection], None]) -> None:
        pass

    async def close(self) -> None:
        pass


class EndpointService(Protocol):
    async def bind(self, address: str) -> Endpoint:
        pass
