"""Canonical RIFF/WAVE encoder for rendered buffers.

Layout: ``RIFF`` size ``WAVE``, a 16-byte ``fmt `` chunk, then one ``data``
chunk of interleaved little-endian samples. 16-bit samples are clamped to
[-1, 1] and scaled by 32767; 32-bit samples are raw IEEE float32.
"""

from __future__ import annotations

import struct

import numpy as np

from bounce.hands.processor import AudioBuffer

SUPPORTED_BIT_DEPTHS = (16, 32)
PCM_FORMAT_TAG = 1


def encode_wav(buffer: AudioBuffer, bit_depth: int = 16) -> bytes:
    """Encode ``buffer`` as a WAV byte stream.

    The fmt chunk always carries format tag 1, including for 32-bit float
    payloads. Readers that honour the tag decode 32-bit files as int32.
    """
    if bit_depth not in SUPPORTED_BIT_DEPTHS:
        raise ValueError(f"unsupported bit depth: {bit_depth}")

    channels = buffer.number_of_channels
    bytes_per_sample = bit_depth // 8
    block_align = channels * bytes_per_sample
    byte_rate = buffer.sample_rate * block_align

    # (channels, frames) -> frames x channels, row-major = interleaved
    interleaved = buffer.data.T
    if bit_depth == 16:
        clipped = np.clip(interleaved, -1.0, 1.0)
        payload = (clipped * 32767).astype("<i2").tobytes()
    else:
        payload = interleaved.astype("<f4").tobytes()

    data_size = len(payload)
    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_TAG,
        channels,
        buffer.sample_rate,
        byte_rate,
        block_align,
        bit_depth,
        b"data",
        data_size,
    )
    return header + payload
