from dataclasses import dataclass
from urllib.parse import urlparse

DEFAULT_SERVER_URL = "ws://localhost:8080/ws"
WEBSOCKET_SCHEMES = ("ws", "wss")


def normalize_server_url(url: str | None) -> str:
    if not url:
        return DEFAULT_SERVER_URL
    candidate = url.strip()
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return DEFAULT_SERVER_URL
    if parsed.scheme.lower() not in WEBSOCKET_SCHEMES or not parsed.hostname:
        return DEFAULT_SERVER_URL
    return candidate


@dataclass(frozen=True)
class Settings:
    server_url: str = DEFAULT_SERVER_URL
    language: str = ""
    auto_start: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "server_url", normalize_server_url(self.server_url))
        object.__setattr__(self, "language", (self.language or "").strip())

    def with_updates(
        self,
        server_url: str | None = None,
        language: str | None = None,
        auto_start: bool | None = None,
    ) -> "Settings":
        return Settings(
            server_url=self.server_url if server_url is None else server_url,
            language=self.language if language is None else language,
            auto_start=self.auto_start if auto_start is None else auto_start,
        )
