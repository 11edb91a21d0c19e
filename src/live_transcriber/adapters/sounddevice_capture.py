import logging
from collections.abc import AsyncIterator

import janus
import numpy as np
import sounddevice as sd

from live_transcriber.domain.errors import CaptureUnavailable

logger = logging.getLogger(__name__)

DEFAULT_FRAME_SIZE = 4096


class SounddeviceCapture:
    def __init__(
        self,
        device: str | int | None = None,
        sample_rate: int = 16000,
        frame_size: int = DEFAULT_FRAME_SIZE,
    ) -> None:
        self._device = device
        self._sample_rate = sample_rate
        self._frame_size = frame_size
        self._stream: sd.InputStream | None = None
        self._queue: janus.Queue[np.ndarray] | None = None
        self._opened = False
        self.dropped_frames = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def frame_size(self) -> int:
        return self._frame_size

    async def open(self) -> AsyncIterator[np.ndarray]:
        if self._opened:
            raise RuntimeError("Capture source cannot be reopened")
        self._opened = True
        self._queue = janus.Queue(maxsize=1)
        queue = self._queue

        def audio_callback(indata: np.ndarray, frames: int, time_info, status) -> None:
            if status:
                logger.warning("Audio capture status: %s", status)
            try:
                queue.sync_q.put_nowait(indata[:, 0].copy())
            except janus.SyncQueueFull:
                self.dropped_frames += 1
            except janus.SyncQueueShutDown:
                pass

        try:
            device = self._resolve_device()
            self._stream = sd.InputStream(
                device=device,
                samplerate=self._sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self._frame_size,
                callback=audio_callback,
            )
            self._stream.start()
        except CaptureUnavailable:
            await self.close()
            raise
        except (sd.PortAudioError, ValueError) as exc:
            await self.close()
            raise CaptureUnavailable(f"Failed to capture audio: {exc}") from exc

        logger.info(
            "Audio capture started (device=%s, rate=%d, frame=%d samples)",
            device, self._sample_rate, self._frame_size,
        )
        return self._read_frames(queue)

    async def close(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except sd.PortAudioError:
                logger.warning("Error while closing audio stream", exc_info=True)
            self._stream = None
            logger.info("Audio capture stopped (dropped=%d)", self.dropped_frames)
        if self._queue is not None:
            self._queue.close()
            self._queue = None

    async def _read_frames(self, queue: janus.Queue[np.ndarray]) -> AsyncIterator[np.ndarray]:
        while True:
            try:
                frame = await queue.async_q.get()
            except janus.AsyncQueueShutDown:
                break
            yield frame

    def _resolve_device(self) -> str | int | None:
        if self._device is None or self._device == "":
            return None
        if isinstance(self._device, int):
            return self._device
        try:
            return int(self._device)
        except ValueError:
            pass
        for i, dev in enumerate(sd.query_devices()):
            if self._device.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                logger.info("Resolved device '%s' -> %d (%s)", self._device, i, dev["name"])
                return i
        raise CaptureUnavailable(f"No input device matching '{self._device}'")
