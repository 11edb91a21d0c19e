import numpy as np

WIRE_DTYPE = np.dtype("<i2")
NEGATIVE_SCALE = 32768.0
POSITIVE_SCALE = 32767.0


class SampleEncoder:
    """Float32 frames in [-1.0, 1.0] to little-endian int16 PCM.

    Negative samples scale by 32768 and non-negative ones by 32767, so both
    ends of the range land exactly on the int16 limits. NaN encodes as silence
    and infinities saturate.
    """

    def encode(self, frame) -> np.ndarray:
        samples = np.asarray(frame, dtype=np.float64).reshape(-1)
        if samples.size == 0:
            return np.empty(0, dtype=WIRE_DTYPE)
        clipped = np.clip(np.nan_to_num(samples, nan=0.0), -1.0, 1.0)
        scaled = np.where(clipped < 0, clipped * NEGATIVE_SCALE, clipped * POSITIVE_SCALE)
        return np.rint(scaled).astype(WIRE_DTYPE)

    def encode_bytes(self, frame) -> bytes:
        return self.encode(frame).tobytes()


_default_encoder = SampleEncoder()


def encode(frame) -> np.ndarray:
    return _default_encoder.encode(frame)
