import asyncio
from dataclasses import dataclass, field

from live_transcriber.domain.settings import Settings
from live_transcriber.domain.state import ConnectionState
from live_transcriber.ports.capture import CaptureSource
from live_transcriber.ports.connection import StreamConnection


@dataclass(eq=False)
class Session:
    settings: Settings
    capture: CaptureSource | None = None
    connection: StreamConnection | None = None
    pump_task: asyncio.Task | None = None
    frames_delivered: int = 0
    released: bool = field(default=False, init=False)

    @property
    def active(self) -> bool:
        return not self.released

    @property
    def connection_state(self) -> ConnectionState:
        if self.connection is None:
            return ConnectionState.IDLE
        return self.connection.state

    async def release(self) -> None:
        # Each step runs even if an earlier one raises; the first error propagates.
        self.released = True
        try:
            if self.connection is not None:
                await self.connection.close()
        finally:
            try:
                if self.capture is not None:
                    await self.capture.close()
            finally:
                await self._cancel_pump()

    async def _cancel_pump(self) -> None:
        task = self.pump_task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
