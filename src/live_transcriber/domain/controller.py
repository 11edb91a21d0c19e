import asyncio
import logging
from collections.abc import AsyncIterator, Callable

from live_transcriber.domain.encoder import SampleEncoder
from live_transcriber.domain.errors import (
    CaptureUnavailable,
    PermissionDenied,
    StreamConnectionError,
    TranscriberError,
    as_transcriber_error,
    user_message,
)
from live_transcriber.domain.session import Session
from live_transcriber.domain.settings import Settings
from live_transcriber.domain.state import ConnectionState, SessionState, validate_transition
from live_transcriber.domain.transcript import TranscriptLog
from live_transcriber.ports.capture import AudioFrame, CapturePermission, CaptureSource
from live_transcriber.ports.connection import ConnectionEvent, StreamConnection

logger = logging.getLogger(__name__)

CaptureFactory = Callable[[Settings], CaptureSource]
ConnectionFactory = Callable[[Settings], StreamConnection]
StateCallback = Callable[[SessionState, SessionState], None]


class SessionController:
    def __init__(
        self,
        permission: CapturePermission,
        capture_factory: CaptureFactory,
        connection_factory: ConnectionFactory,
        sink: TranscriptLog,
        settings: Settings | None = None,
        encoder: SampleEncoder | None = None,
        on_state_change: StateCallback | None = None,
    ) -> None:
        self._permission = permission
        self._capture_factory = capture_factory
        self._connection_factory = connection_factory
        self._sink = sink
        self._settings = settings or Settings()
        self._encoder = encoder or SampleEncoder()
        self._on_state_change = on_state_change

        self._state = SessionState.STOPPED
        self._session: Session | None = None
        self._stopped = asyncio.Event()
        self._stopped.set()
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def sink(self) -> TranscriptLog:
        return self._sink

    def update_settings(self, settings: Settings) -> None:
        self._settings = settings
        if self._state is not SessionState.STOPPED:
            logger.info("Settings updated, applying on next start")
        else:
            logger.info("Settings updated")

    def get_connection_state(self) -> dict[str, bool]:
        session = self._session
        connected = session is not None and session.connection_state is ConnectionState.OPEN
        return {"connected": connected}

    async def toggle(self) -> bool:
        if self._state is SessionState.STOPPED:
            await self.start()
        else:
            await self.stop()
        return self._state is not SessionState.STOPPED

    async def start(self) -> None:
        if self._state is not SessionState.STOPPED:
            logger.info("Start ignored, session already %s", self._state.name)
            return

        session = Session(settings=self._settings)
        self._session = session
        self._stopped.clear()
        self._sink.clear()
        self._transition_to(SessionState.STARTING)

        try:
            await self._open_session(session)
        except Exception as exc:
            if not self._is_current(session):
                logger.warning("Abandoned start failed: %s", exc)
                try:
                    await session.release()
                except Exception:
                    logger.exception("Error while releasing abandoned session")
                return
            logger.exception("Session start failed")
            await self._abort_start(as_transcriber_error(exc))

    async def _open_session(self, session: Session) -> None:
        try:
            granted = await self._permission.request()
        except TranscriberError as exc:
            logger.warning("Capture permission request failed: %s", exc)
            granted = False
        if not self._is_current(session):
            logger.info("Start abandoned while waiting for permission")
            return
        if not granted:
            logger.warning("Capture permission denied")
            await self._abort_start(PermissionDenied())
            return

        capture = self._capture_factory(session.settings)
        session.capture = capture
        try:
            frames = await capture.open()
        except TranscriberError as exc:
            logger.warning("Audio capture failed: %s", exc)
            await self._abort_start(exc)
            return
        if not self._is_current(session):
            logger.info("Start abandoned after capture opened")
            await capture.close()
            return

        connection = self._connection_factory(session.settings)
        session.connection = connection
        connection.on(ConnectionEvent.OPEN, lambda: self._handle_open(session))
        connection.on(ConnectionEvent.MESSAGE, lambda text: self._handle_message(session, text))
        connection.on(ConnectionEvent.ERROR, lambda error: self._handle_failure(session, error))
        connection.on(
            ConnectionEvent.CLOSE,
            lambda: self._handle_failure(session, StreamConnectionError("Connection closed by server")),
        )
        logger.info("Connecting to %s", session.settings.server_url)
        connection.connect(session.settings.server_url)
        if not self._is_current(session):
            return

        session.pump_task = asyncio.create_task(self._pump_frames(session, frames))
        self._transition_to(SessionState.RUNNING)

    async def stop(self) -> None:
        if self._state is SessionState.STOPPED:
            return
        if self._state is SessionState.STOPPING:
            await self._stopped.wait()
            self._sink.clear()
            return
        await self._shutdown()
        self._sink.clear()

    def _is_current(self, session: Session) -> bool:
        return self._session is session and self._state in (SessionState.STARTING, SessionState.RUNNING)

    async def _abort_start(self, error: TranscriberError) -> None:
        self._sink.append(user_message(error))
        await self._shutdown()

    async def _shutdown(self) -> None:
        await self._release(self._detach())

    def _detach(self) -> Session | None:
        session = self._session
        self._session = None
        self._transition_to(SessionState.STOPPING)
        return session

    async def _release(self, session: Session | None) -> None:
        try:
            if session is not None:
                await session.release()
        except Exception:
            logger.exception("Error while releasing session")
        finally:
            self._transition_to(SessionState.STOPPED)
            self._stopped.set()

    async def _pump_frames(self, session: Session, frames: AsyncIterator[AudioFrame]) -> None:
        try:
            async for frame in frames:
                if session.released:
                    break
                connection = session.connection
                if connection is None:
                    continue
                await connection.send(self._encoder.encode_bytes(frame))
                session.frames_delivered += 1
        except Exception as exc:
            logger.exception("Frame pump failed")
            self._handle_failure(session, StreamConnectionError(str(exc) or type(exc).__name__))
            return
        if self._session is session and self._state is SessionState.RUNNING:
            self._handle_failure(session, CaptureUnavailable("Audio capture stopped"))

    def _handle_open(self, session: Session) -> None:
        if self._session is not session:
            logger.debug("Ignoring open event from stale connection")
            return
        logger.info("Connected to %s", session.settings.server_url)

    def _handle_message(self, session: Session, text: str) -> None:
        if self._session is not session or self._state is not SessionState.RUNNING:
            logger.debug("Discarding transcript from inactive session")
            return
        self._sink.append(text)

    def _handle_failure(self, session: Session, error: BaseException) -> None:
        if not self._is_current(session):
            logger.debug("Ignoring failure from stale session: %s", error)
            return
        logger.warning("Session failed: %s", error)
        self._sink.append(user_message(error))
        task = asyncio.create_task(self._release(self._detach()))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _transition_to(self, target: SessionState) -> None:
        validate_transition(self._state, target)
        previous = self._state
        logger.info("State: %s -> %s", previous.name, target.name)
        self._state = target
        if self._on_state_change:
            self._on_state_change(previous, target)
