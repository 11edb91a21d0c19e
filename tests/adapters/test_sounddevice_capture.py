import asyncio
from types import SimpleNamespace

import numpy as np
import pytest

try:
    import sounddevice  # noqa: F401
except OSError:
    pytest.skip("PortAudio library not available", allow_module_level=True)

from live_transcriber.adapters import sounddevice_capture
from live_transcriber.adapters.sounddevice_capture import SounddeviceCapture
from live_transcriber.domain.errors import CaptureUnavailable

from conftest import FRAME_SIZE, generate_sine_wave


class FakePortAudioError(Exception):
    pass


class FakeInputStream:
    instances: list["FakeInputStream"] = []
    start_error: Exception | None = None

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.started = False
        self.closed = False
        FakeInputStream.instances.append(self)

    def start(self) -> None:
        if FakeInputStream.start_error is not None:
            raise FakeInputStream.start_error
        self.started = True

    def stop(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True


DEVICES = [
    {"name": "HDMI Output", "max_input_channels": 0},
    {"name": "USB Microphone", "max_input_channels": 1},
]


@pytest.fixture
def fake_sd(monkeypatch):
    FakeInputStream.instances = []
    FakeInputStream.start_error = None
    fake = SimpleNamespace(
        InputStream=FakeInputStream,
        PortAudioError=FakePortAudioError,
        query_devices=lambda: DEVICES,
    )
    monkeypatch.setattr(sounddevice_capture, "sd", fake)
    return fake


def _column(frame: np.ndarray) -> np.ndarray:
    return frame.reshape(-1, 1)


async def _feed(stream: FakeInputStream, frame: np.ndarray) -> None:
    await asyncio.to_thread(stream.callback, _column(frame), len(frame), None, None)


class TestSounddeviceCapture:
    @pytest.mark.asyncio
    async def test_open_configures_mono_float_stream(self, fake_sd):
        capture = SounddeviceCapture(sample_rate=16000, frame_size=FRAME_SIZE)
        await capture.open()

        stream = FakeInputStream.instances[0]
        assert stream.started
        assert stream.kwargs["samplerate"] == 16000
        assert stream.kwargs["channels"] == 1
        assert stream.kwargs["dtype"] == "float32"
        assert stream.kwargs["blocksize"] == FRAME_SIZE
        assert stream.kwargs["device"] is None
        await capture.close()

    @pytest.mark.asyncio
    async def test_frames_flow_from_callback(self, fake_sd):
        capture = SounddeviceCapture()
        frames = await capture.open()
        source = generate_sine_wave()

        await _feed(FakeInputStream.instances[0], source)
        frame = await asyncio.wait_for(anext(frames), timeout=2.0)

        assert frame.shape == (FRAME_SIZE,)
        np.testing.assert_array_equal(frame, source)
        await capture.close()

    @pytest.mark.asyncio
    async def test_full_queue_drops_frames(self, fake_sd):
        capture = SounddeviceCapture()
        await capture.open()
        stream = FakeInputStream.instances[0]

        await _feed(stream, generate_sine_wave())
        await _feed(stream, generate_sine_wave())

        assert capture.dropped_frames == 1
        await capture.close()

    @pytest.mark.asyncio
    async def test_close_ends_frame_stream(self, fake_sd):
        capture = SounddeviceCapture()
        frames = await capture.open()
        stream = FakeInputStream.instances[0]

        await capture.close()
        await capture.close()

        collected = [frame async for frame in frames]
        assert collected == []
        assert stream.closed

    @pytest.mark.asyncio
    async def test_portaudio_failure_becomes_capture_unavailable(self, fake_sd):
        FakeInputStream.start_error = FakePortAudioError("Device unavailable")
        capture = SounddeviceCapture()

        with pytest.raises(CaptureUnavailable, match="Device unavailable"):
            await capture.open()
        assert FakeInputStream.instances[0].closed

    @pytest.mark.asyncio
    async def test_reopen_rejected(self, fake_sd):
        capture = SounddeviceCapture()
        await capture.open()
        with pytest.raises(RuntimeError):
            await capture.open()
        await capture.close()


class TestResolveDevice:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("device, expected", [(3, 3), ("2", 2), ("usb", 1), ("", None)])
    async def test_device_resolution(self, fake_sd, device, expected):
        capture = SounddeviceCapture(device=device)
        await capture.open()
        assert FakeInputStream.instances[0].kwargs["device"] == expected
        await capture.close()

    @pytest.mark.asyncio
    async def test_output_only_device_not_matched(self, fake_sd):
        capture = SounddeviceCapture(device="hdmi")
        with pytest.raises(CaptureUnavailable, match="hdmi"):
            await capture.open()
        assert FakeInputStream.instances == []
