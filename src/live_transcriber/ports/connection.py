from collections.abc import Callable
from enum import Enum
from typing import Protocol

from live_transcriber.domain.state import ConnectionState

LANGUAGE_DIRECTIVE_PREFIX = "language:"


class ConnectionEvent(Enum):
    OPEN = "open"
    MESSAGE = "message"
    ERROR = "error"
    CLOSE = "close"


def language_directive(language: str) -> str:
    return f"{LANGUAGE_DIRECTIVE_PREFIX}{language}"


class StreamConnection(Protocol):
    @property
    def state(self) -> ConnectionState: ...

    def on(self, event: ConnectionEvent, handler: Callable[..., None]) -> None: ...

    def connect(self, url: str) -> None: ...

    async def send(self, data: bytes) -> None: ...

    async def close(self) -> None: ...
