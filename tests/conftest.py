import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator, Callable

import numpy as np
import pytest

from live_transcriber.domain.controller import SessionController
from live_transcriber.domain.settings import Settings
from live_transcriber.domain.state import ConnectionState
from live_transcriber.domain.transcript import TranscriptLog
from live_transcriber.ports.connection import ConnectionEvent, language_directive


SAMPLE_RATE = 16000
FRAME_SIZE = 4096


def generate_silence(frame_size: int = FRAME_SIZE) -> np.ndarray:
    return np.zeros(frame_size, dtype=np.float32)


def generate_sine_wave(
    frequency: float = 440.0,
    amplitude: float = 0.8,
    frame_size: int = FRAME_SIZE,
    sample_rate: int = SAMPLE_RATE,
) -> np.ndarray:
    t = np.arange(frame_size) / sample_rate
    return (np.sin(2 * np.pi * frequency * t) * amplitude).astype(np.float32)


def generate_white_noise(amplitude: float = 0.5, frame_size: int = FRAME_SIZE) -> np.ndarray:
    return (np.random.uniform(-1, 1, frame_size) * amplitude).astype(np.float32)


class FakePermission:
    def __init__(
        self,
        granted: bool = True,
        gate: asyncio.Event | None = None,
        error: Exception | None = None,
    ) -> None:
        self._granted = granted
        self._gate = gate
        self._error = error
        self.requests = 0

    async def request(self) -> bool:
        self.requests += 1
        if self._gate is not None:
            await self._gate.wait()
        if self._error is not None:
            raise self._error
        return self._granted


class FakeCaptureSource:
    def __init__(self, error: Exception | None = None) -> None:
        self._error = error
        self._queue: asyncio.Queue[np.ndarray | None] = asyncio.Queue()
        self.opened = False
        self.closed = False
        self.close_calls = 0

    @property
    def sample_rate(self) -> int:
        return SAMPLE_RATE

    @property
    def frame_size(self) -> int:
        return FRAME_SIZE

    async def open(self) -> AsyncIterator[np.ndarray]:
        if self._error is not None:
            raise self._error
        if self.opened:
            raise RuntimeError("Capture source cannot be reopened")
        self.opened = True
        return self._frames()

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)

    async def deliver(self, *frames: np.ndarray) -> None:
        for frame in frames:
            self._queue.put_nowait(frame)
        await self._queue.join()

    def push(self, *frames: np.ndarray) -> None:
        for frame in frames:
            self._queue.put_nowait(frame)

    async def end_stream(self) -> None:
        self._queue.put_nowait(None)
        await asyncio.sleep(0)

    async def _frames(self) -> AsyncIterator[np.ndarray]:
        while True:
            frame = await self._queue.get()
            try:
                if frame is None:
                    return
                yield frame
            finally:
                self._queue.task_done()


class FakeConnection:
    def __init__(self, language: str = "", auto_open: bool = True) -> None:
        self._language = language
        self._auto_open = auto_open
        self._handlers: dict[ConnectionEvent, list[Callable[..., None]]] = defaultdict(list)
        self.state = ConnectionState.IDLE
        self.url: str | None = None
        self.sent: list[bytes | str] = []
        self.dropped_sends = 0
        self.close_calls = 0

    @property
    def binary_sends(self) -> list[bytes]:
        return [item for item in self.sent if isinstance(item, bytes)]

    def on(self, event: ConnectionEvent, handler: Callable[..., None]) -> None:
        self._handlers[event].append(handler)

    def connect(self, url: str) -> None:
        self.url = url
        self.state = ConnectionState.CONNECTING
        if self._auto_open:
            self.open()

    def open(self) -> None:
        self.state = ConnectionState.OPEN
        if self._language:
            self.sent.append(language_directive(self._language))
        self.emit(ConnectionEvent.OPEN)

    def receive(self, text: str) -> None:
        self.emit(ConnectionEvent.MESSAGE, text)

    def fail(self, error: Exception) -> None:
        self.state = ConnectionState.CLOSED
        self.emit(ConnectionEvent.ERROR, error)

    def remote_close(self) -> None:
        self.state = ConnectionState.CLOSED
        self.emit(ConnectionEvent.CLOSE)

    def emit(self, event: ConnectionEvent, *args) -> None:
        for handler in list(self._handlers[event]):
            handler(*args)

    async def send(self, data: bytes) -> None:
        if self.state is not ConnectionState.OPEN:
            self.dropped_sends += 1
            return
        self.sent.append(data)

    async def close(self) -> None:
        self.close_calls += 1
        self.state = ConnectionState.CLOSED


class Harness:
    def __init__(
        self,
        permission: FakePermission | None = None,
        capture_error: Exception | None = None,
        auto_open: bool = True,
        settings: Settings | None = None,
    ) -> None:
        self.permission = permission or FakePermission()
        self.capture_error = capture_error
        self.auto_open = auto_open
        self.captures: list[FakeCaptureSource] = []
        self.connections: list[FakeConnection] = []
        self.sink = TranscriptLog()
        self.transitions: list[tuple] = []
        self.controller = SessionController(
            permission=self.permission,
            capture_factory=self._make_capture,
            connection_factory=self._make_connection,
            sink=self.sink,
            settings=settings or Settings(),
            on_state_change=lambda f, t: self.transitions.append((f, t)),
        )

    @property
    def capture(self) -> FakeCaptureSource:
        return self.captures[-1]

    @property
    def connection(self) -> FakeConnection:
        return self.connections[-1]

    def _make_capture(self, settings: Settings) -> FakeCaptureSource:
        capture = FakeCaptureSource(error=self.capture_error)
        self.captures.append(capture)
        return capture

    def _make_connection(self, settings: Settings) -> FakeConnection:
        connection = FakeConnection(language=settings.language, auto_open=self.auto_open)
        self.connections.append(connection)
        return connection


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture
def sink():
    return TranscriptLog()


@pytest.fixture
def sine_frames():
    return [generate_sine_wave(frequency=220.0 * (i + 1)) for i in range(3)]
