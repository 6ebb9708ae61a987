"""WAV encoder tests — header layout, 16-bit PCM and 32-bit float payloads."""

import io
import struct

import numpy as np
import pytest
import soundfile as sf

from bounce.hands.processor import AudioBuffer
from bounce.hands.wav import PCM_FORMAT_TAG, encode_wav


def _stereo(frames: int = 100, sr: int = 8000) -> AudioBuffer:
    t = np.arange(frames) / sr
    left = 0.5 * np.sin(2 * np.pi * 440 * t)
    return AudioBuffer(np.vstack([left, -left]), sr)


def test_16bit_reads_back_with_soundfile():
    """A 16-bit file decodes to the same samples within quantization error."""
    buf = _stereo()
    blob = encode_wav(buf, 16)

    data, sr = sf.read(io.BytesIO(blob), dtype="float64", always_2d=True)
    assert sr == 8000
    assert data.shape == (100, 2)
    np.testing.assert_allclose(data.T, buf.data, atol=1e-4)


def test_16bit_clamps_out_of_range():
    buf = AudioBuffer(np.array([[2.0, -2.0]]), 8000)
    blob = encode_wav(buf, 16)
    samples = np.frombuffer(blob[44:], dtype="<i2")
    assert samples.tolist() == [32767, -32767]


def test_header_fields():
    buf = _stereo(frames=10, sr=22050)
    blob = encode_wav(buf, 16)
    riff, size, wave, fmt, fmt_len, tag, channels, sr, byte_rate, align, bits, data, data_len = (
        struct.unpack("<4sI4s4sIHHIIHH4sI", blob[:44])
    )
    assert (riff, wave, fmt, data) == (b"RIFF", b"WAVE", b"fmt ", b"data")
    assert fmt_len == 16
    assert tag == PCM_FORMAT_TAG
    assert channels == 2
    assert sr == 22050
    assert align == 4
    assert byte_rate == 22050 * 4
    assert bits == 16
    assert data_len == 10 * 4
    assert size == 36 + data_len
    assert len(blob) == 44 + data_len


def test_32bit_float_payload_with_pcm_tag():
    """32-bit writes raw float32 but keeps format tag 1."""
    buf = _stereo(frames=16)
    blob = encode_wav(buf, 32)

    tag, bits = struct.unpack("<H", blob[20:22])[0], struct.unpack("<H", blob[34:36])[0]
    assert tag == 1
    assert bits == 32

    samples = np.frombuffer(blob[44:], dtype="<f4").reshape(-1, 2).T
    np.testing.assert_allclose(samples, buf.data, atol=1e-7)


def test_interleaving_order():
    buf = AudioBuffer(np.array([[0.1, 0.2], [0.3, 0.4]]), 8000)
    samples = np.frombuffer(encode_wav(buf, 32)[44:], dtype="<f4")
    np.testing.assert_allclose(samples, [0.1, 0.3, 0.2, 0.4], atol=1e-7)


@pytest.mark.parametrize("depth", [8, 24])
def test_unsupported_bit_depth(depth):
    with pytest.raises(ValueError):
        encode_wav(_stereo(), depth)
