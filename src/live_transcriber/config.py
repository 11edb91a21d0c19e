import os
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from live_transcriber.domain.settings import DEFAULT_SERVER_URL, Settings

ENV_FILE_PATH = Path.home() / ".config" / "live-transcriber" / "env"


class TranscriberConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LIVE_TRANSCRIBER_")

    server_url: str = DEFAULT_SERVER_URL
    language: str = ""
    auto_start: bool = False

    capture_device: str = ""
    sample_rate: int = 16000
    frame_size: int = 4096
    permission_mode: Literal["always", "prompt", "never"] = "always"

    connect_timeout_s: float = 5.0
    probe_timeout_s: float = 5.0

    socket_path: str = "/tmp/live-transcriber.sock"
    log_file: str = ""

    def to_settings(self) -> Settings:
        return Settings(
            server_url=self.server_url,
            language=self.language,
            auto_start=self.auto_start,
        )


def load_env_file(path: Path = ENV_FILE_PATH) -> None:
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key not in os.environ:
                os.environ[key] = value
