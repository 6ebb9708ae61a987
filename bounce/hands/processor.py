"""BOUNCE Audio Post-Processor — pure buffer-to-buffer transforms.

Every transform takes an ``AudioBuffer`` and returns a new one; inputs are
never mutated. Supports: gain, normalize, fade in/out, one-pole high/lowpass,
a sample-wise compressor, and a noise-impulse convolution reverb.

The reverb is a placeholder-quality algorithm (decaying noise impulse,
direct O(n·m) convolution), not a perceptual reverb.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import structlog
from numpy.typing import NDArray
from scipy.signal import lfilter

logger = structlog.get_logger()


# ── Buffer Type ──────────────────────────────────────────


@dataclass(frozen=True)
class AudioBuffer:
    """Decoded multi-channel PCM, shape (channels, frames), float64 in [-1, 1]."""

    data: NDArray[np.float64]
    sample_rate: int

    def __post_init__(self) -> None:
        if self.data.ndim != 2:
            raise ValueError(f"expected (channels, frames) array, got ndim={self.data.ndim}")
        if self.sample_rate <= 0:
            raise ValueError(f"invalid sample rate: {self.sample_rate}")

    @classmethod
    def silent(cls, frames: int, sample_rate: int, channels: int = 2) -> AudioBuffer:
        return cls(np.zeros((channels, frames), dtype=np.float64), sample_rate)

    @classmethod
    def from_channels(cls, channels: list[NDArray[np.float64]], sample_rate: int) -> AudioBuffer:
        return cls(np.vstack([np.asarray(c, dtype=np.float64) for c in channels]), sample_rate)

    @property
    def number_of_channels(self) -> int:
        return int(self.data.shape[0])

    @property
    def length(self) -> int:
        return int(self.data.shape[1])

    @property
    def duration(self) -> float:
        return self.length / self.sample_rate

    def copy(self) -> AudioBuffer:
        return AudioBuffer(self.data.copy(), self.sample_rate)


@dataclass
class CompressorOptions:
    """Linear-amplitude compressor parameters; attack/release in seconds."""

    threshold: float = 0.7
    ratio: float = 4.0
    attack: float = 0.01
    release: float = 0.1


@dataclass
class ReverbOptions:
    """Impulse reverb parameters."""

    room_size: float = 0.5  # IR length = room_size * 2 seconds
    damping: float = 0.5
    wet_level: float = 0.3
    seed: int | None = None


@dataclass
class ProcessingOptions:
    """Post-processing chain configuration (see ``process_audio``)."""

    normalize: bool = False
    fade_in: bool = False
    fade_out: bool = False
    fade_in_duration: float = 0.1
    fade_out_duration: float = 0.1
    gain: float = 1.0
    highpass: float | None = None
    lowpass: float | None = None
    compress: CompressorOptions | None = None
    reverb: ReverbOptions | None = None


@dataclass
class AudioAnalysis:
    """Level summary of a buffer."""

    duration: float
    peak: float
    rms: float
    dynamic_range: float
    sample_rate: int
    channels: int
    samples: int
    extra: dict[str, float] = field(default_factory=dict)


# ── Transforms ───────────────────────────────────────────


def gain(buffer: AudioBuffer, value: float) -> AudioBuffer:
    """Uniform multiply."""
    return AudioBuffer(buffer.data * value, buffer.sample_rate)


def normalize(buffer: AudioBuffer, target_amplitude: float = 1.0) -> AudioBuffer:
    """Scale so the global peak across all channels equals ``target_amplitude``."""
    peak = float(np.max(np.abs(buffer.data))) if buffer.length else 0.0
    if peak <= 0.0:
        return buffer.copy()
    factor = target_amplitude / peak
    logger.debug("normalized", peak=round(peak, 4), factor=round(factor, 4))
    return AudioBuffer(buffer.data * factor, buffer.sample_rate)


def _ramp_length(buffer: AudioBuffer, duration: float) -> int:
    if duration < 0:
        raise ValueError(f"fade duration must be >= 0, got {duration}")
    return min(int(duration * buffer.sample_rate), buffer.length)


def fade_in(buffer: AudioBuffer, duration: float) -> AudioBuffer:
    """Linear ramp from 0 over the first ``duration`` seconds."""
    n = _ramp_length(buffer, duration)
    out = buffer.data.copy()
    if n > 0:
        ramp = np.arange(n, dtype=np.float64) / n
        out[:, :n] *= ramp
    return AudioBuffer(out, buffer.sample_rate)


def fade_out(buffer: AudioBuffer, duration: float) -> AudioBuffer:
    """Linear ramp down to 0 over the last ``duration`` seconds."""
    n = _ramp_length(buffer, duration)
    out = buffer.data.copy()
    if n > 0:
        ramp = np.arange(n - 1, -1, -1, dtype=np.float64) / n
        out[:, buffer.length - n :] *= ramp
    return AudioBuffer(out, buffer.sample_rate)


def _rc_alpha(freq: float, sample_rate: int, highpass: bool) -> float:
    if freq <= 0:
        raise ValueError(f"filter frequency must be > 0, got {freq}")
    rc = 1.0 / (2.0 * np.pi * freq)
    dt = 1.0 / sample_rate
    return rc / (rc + dt) if highpass else dt / (rc + dt)


def highpass(buffer: AudioBuffer, freq: float) -> AudioBuffer:
    """One-pole RC highpass: y[i] = a * (y[i-1] + x[i] - x[i-1])."""
    alpha = _rc_alpha(freq, buffer.sample_rate, highpass=True)
    # lfilter starts from zero state on every row, i.e. per channel.
    out = lfilter([alpha, -alpha], [1.0, -alpha], buffer.data, axis=1)
    return AudioBuffer(np.asarray(out, dtype=np.float64), buffer.sample_rate)


def lowpass(buffer: AudioBuffer, freq: float) -> AudioBuffer:
    """One-pole RC lowpass: y[i] = y[i-1] + a * (x[i] - y[i-1])."""
    alpha = _rc_alpha(freq, buffer.sample_rate, highpass=False)
    out = lfilter([alpha], [1.0, -(1.0 - alpha)], buffer.data, axis=1)
    return AudioBuffer(np.asarray(out, dtype=np.float64), buffer.sample_rate)


def compress(buffer: AudioBuffer, options: CompressorOptions | None = None) -> AudioBuffer:
    """Sample-wise compressor with linear attack/release envelope steps.

    Above threshold the target gain is ``(threshold + excess / ratio) / input``;
    the envelope moves down toward it by 1/attack_samples per sample and
    recovers toward 1.0 by 1/release_samples per sample.
    """
    opts = options or CompressorOptions()
    sr = buffer.sample_rate
    attack_step = 1.0 / max(1, int(opts.attack * sr))
    release_step = 1.0 / max(1, int(opts.release * sr))
    out = buffer.data.copy()

    for ch in range(buffer.number_of_channels):
        channel = out[ch]
        envelope = 1.0
        for i in range(len(channel)):
            level = abs(channel[i])
            if level > opts.threshold:
                excess = level - opts.threshold
                target = (opts.threshold + excess / opts.ratio) / level
                if target < envelope:
                    envelope = max(target, envelope - attack_step)
                else:
                    envelope = min(1.0, envelope + release_step)
            else:
                envelope = min(1.0, envelope + release_step)
            channel[i] *= envelope

    return AudioBuffer(out, sr)


def reverb_impulse(
    sample_rate: int,
    room_size: float = 0.5,
    damping: float = 0.5,
    seed: int | None = None,
) -> NDArray[np.float64]:
    """Exponentially decaying noise impulse, ``room_size * 2`` seconds long."""
    n = int(room_size * sample_rate * 2)
    rng = np.random.default_rng(seed)
    t = np.arange(n, dtype=np.float64) / sample_rate
    decay = np.power(max(1.0 - damping, 0.0), t)
    return rng.uniform(-1.0, 1.0, n) * decay * 0.1


def reverb(buffer: AudioBuffer, options: ReverbOptions | None = None) -> AudioBuffer:
    """Convolve with a synthetic impulse and crossfade by ``wet_level``."""
    opts = options or ReverbOptions()
    impulse = reverb_impulse(buffer.sample_rate, opts.room_size, opts.damping, opts.seed)
    if impulse.size == 0:
        return buffer.copy()

    out = np.empty_like(buffer.data)
    for ch in range(buffer.number_of_channels):
        dry = buffer.data[ch]
        # np.convolve is direct (not FFT) convolution; truncate the tail.
        wet = np.convolve(dry, impulse)[: len(dry)]
        out[ch] = dry * (1.0 - opts.wet_level) + wet * opts.wet_level
    return AudioBuffer(out, buffer.sample_rate)


# ── Chain Processor ──────────────────────────────────────


def process_audio(buffer: AudioBuffer, options: ProcessingOptions | None = None) -> AudioBuffer:
    """Apply gain, normalize, fades, filters, compression and reverb in order."""
    opts = options or ProcessingOptions()
    out = buffer.copy()

    if opts.gain != 1.0:
        out = gain(out, opts.gain)
    if opts.normalize:
        out = normalize(out)
    if opts.fade_in:
        out = fade_in(out, opts.fade_in_duration)
    if opts.fade_out:
        out = fade_out(out, opts.fade_out_duration)
    if opts.highpass:
        out = highpass(out, opts.highpass)
    if opts.lowpass:
        out = lowpass(out, opts.lowpass)
    if opts.compress:
        out = compress(out, opts.compress)
    if opts.reverb:
        out = reverb(out, opts.reverb)

    return out


# ── Analysis & Mixing ────────────────────────────────────


def analyze_audio(buffer: AudioBuffer) -> AudioAnalysis:
    """Peak, RMS and crest factor across all channels."""
    if buffer.length == 0:
        peak = rms = 0.0
    else:
        magnitude = np.abs(buffer.data)
        peak = float(np.max(magnitude))
        rms = float(np.sqrt(np.mean(magnitude**2)))
    return AudioAnalysis(
        duration=buffer.duration,
        peak=peak,
        rms=rms,
        dynamic_range=peak / (rms + 1e-10),
        sample_rate=buffer.sample_rate,
        channels=buffer.number_of_channels,
        samples=buffer.length,
    )


def mix_audio_buffers(
    buffers: list[AudioBuffer],
    weights: list[float] | None = None,
) -> AudioBuffer | None:
    """Weighted sum; defaults to equal 1/N weights, length of the longest input.

    Inputs with fewer channels than the first buffer reuse their last channel.
    """
    if not buffers:
        return None
    if weights is not None and len(weights) != len(buffers):
        raise ValueError("weights must match the number of buffers")

    first = buffers[0]
    channels = first.number_of_channels
    max_len = max(b.length for b in buffers)
    mixed = np.zeros((channels, max_len), dtype=np.float64)

    for idx, buf in enumerate(buffers):
        weight = weights[idx] if weights is not None else 1.0 / len(buffers)
        for ch in range(channels):
            source = buf.data[min(ch, buf.number_of_channels - 1)]
            mixed[ch, : buf.length] += source * weight

    return AudioBuffer(mixed, first.sample_rate)
