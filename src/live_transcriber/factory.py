import logging

from live_transcriber.adapters.permission import create_permission
from live_transcriber.adapters.sounddevice_capture import SounddeviceCapture
from live_transcriber.adapters.unix_control import UnixSocketControlServer
from live_transcriber.adapters.websocket_connection import WebSocketConnection
from live_transcriber.config import TranscriberConfig
from live_transcriber.domain.controller import SessionController
from live_transcriber.domain.settings import Settings
from live_transcriber.domain.transcript import TranscriptLog
from live_transcriber.ports.capture import CaptureSource
from live_transcriber.ports.connection import StreamConnection
from live_transcriber.ports.control import ControlPort

logger = logging.getLogger(__name__)


def create_capture(config: TranscriberConfig, settings: Settings) -> CaptureSource:
    return SounddeviceCapture(
        device=config.capture_device or None,
        sample_rate=config.sample_rate,
        frame_size=config.frame_size,
    )


def create_connection(config: TranscriberConfig, settings: Settings) -> StreamConnection:
    return WebSocketConnection(
        language=settings.language,
        open_timeout=config.connect_timeout_s,
    )


def create_controller(
    config: TranscriberConfig,
    sink: TranscriptLog | None = None,
) -> SessionController:
    return SessionController(
        permission=create_permission(config.permission_mode),
        capture_factory=lambda settings: create_capture(config, settings),
        connection_factory=lambda settings: create_connection(config, settings),
        sink=sink if sink is not None else TranscriptLog(),
        settings=config.to_settings(),
    )


def create_app(
    config: TranscriberConfig,
) -> tuple[SessionController, ControlPort]:
    controller = create_controller(config)
    control = UnixSocketControlServer(socket_path=config.socket_path)
    logger.debug("Created controller (server=%s)", controller.settings.server_url)
    return controller, control
