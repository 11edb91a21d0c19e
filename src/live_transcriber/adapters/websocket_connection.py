import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from live_transcriber.domain.errors import StreamConnectionError
from live_transcriber.domain.state import ConnectionState, validate_connection_transition
from live_transcriber.ports.connection import ConnectionEvent, language_directive

logger = logging.getLogger(__name__)

CONNECT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class WebSocketConnection:
    def __init__(
        self,
        language: str = "",
        open_timeout: float = 5.0,
        close_timeout: float = 2.0,
    ) -> None:
        self._language = language
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._state = ConnectionState.IDLE
        self._handlers: dict[ConnectionEvent, list[Callable[..., None]]] = defaultdict(list)
        self._ws: ClientConnection | None = None
        self._task: asyncio.Task | None = None
        self._send_lock = asyncio.Lock()
        self.dropped_sends = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    def on(self, event: ConnectionEvent, handler: Callable[..., None]) -> None:
        self._handlers[event].append(handler)

    def connect(self, url: str) -> None:
        validate_connection_transition(self._state, ConnectionState.CONNECTING)
        self._transition_to(ConnectionState.CONNECTING)
        self._task = asyncio.create_task(self._run(url))

    async def send(self, data: bytes) -> None:
        if self._state is not ConnectionState.OPEN:
            self._drop()
            return
        async with self._send_lock:
            if self._state is not ConnectionState.OPEN or self._ws is None:
                self._drop()
                return
            try:
                await self._ws.send(data)
            except ConnectionClosed:
                self._drop()

    async def close(self) -> None:
        if self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self._transition_to(ConnectionState.CLOSING)
        if self._ws is not None:
            await self._ws.close()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._transition_to(ConnectionState.CLOSED)
        logger.info("Disconnected from transcription server")

    async def _run(self, url: str) -> None:
        try:
            ws = await connect(
                url,
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
            )
        except CONNECT_ERRORS as exc:
            self._fail(StreamConnectionError(f"Connection failed: {str(exc) or type(exc).__name__}"))
            return

        if self._state is not ConnectionState.CONNECTING:
            await ws.close()
            return
        self._ws = ws

        try:
            async with self._send_lock:
                self._transition_to(ConnectionState.OPEN)
                if self._language:
                    await ws.send(language_directive(self._language))
            logger.info("Connected to transcription server at %s", url)
            self._emit(ConnectionEvent.OPEN)

            async for message in ws:
                if isinstance(message, str):
                    self._emit(ConnectionEvent.MESSAGE, message)
                else:
                    logger.debug("Ignoring binary message (%d bytes)", len(message))
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as exc:
            if self._state is ConnectionState.OPEN:
                self._fail(StreamConnectionError(f"Connection dropped: {exc}"))
            return

        if self._state is ConnectionState.OPEN:
            self._transition_to(ConnectionState.CLOSED)
            logger.info("Server closed the connection")
            self._emit(ConnectionEvent.CLOSE)

    def _fail(self, error: StreamConnectionError) -> None:
        if self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self._transition_to(ConnectionState.CLOSED)
        logger.warning("%s", error)
        self._emit(ConnectionEvent.ERROR, error)

    def _drop(self) -> None:
        self.dropped_sends += 1
        logger.debug("Dropped send in state %s", self._state.name)

    def _emit(self, event: ConnectionEvent, *args) -> None:
        for handler in list(self._handlers[event]):
            try:
                handler(*args)
            except Exception:
                logger.exception("Connection %s handler failed", event.value)

    def _transition_to(self, target: ConnectionState) -> None:
        if target is self._state:
            return
        validate_connection_transition(self._state, target)
        logger.debug("Connection: %s -> %s", self._state.name, target.name)
        self._state = target


async def probe_connection(url: str, timeout: float = 5.0) -> bool:
    try:
        ws = await connect(url, open_timeout=timeout, close_timeout=1.0)
    except CONNECT_ERRORS as exc:
        logger.warning("Probe of %s failed: %s", url, exc)
        return False
    await ws.close()
    logger.info("Probe of %s succeeded", url)
    return True
