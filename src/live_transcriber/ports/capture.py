from typing import AsyncIterator, Protocol

import numpy as np

AudioFrame = np.ndarray


class CapturePermission(Protocol):
    async def request(self) -> bool: ...


class CaptureSource(Protocol):
    @property
    def sample_rate(self) -> int: ...

    @property
    def frame_size(self) -> int: ...

    async def open(self) -> AsyncIterator[AudioFrame]: ...

    async def close(self) -> None: ...
