"""BOUNCE Synthesis — oscillators, envelopes and patch rendering for offline bounce.

Pure numpy/scipy implementation. Voices are deterministic (noise uses a fixed
seed) so that two renders of the same snapshot are sample-identical.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np
from numpy.typing import NDArray
from scipy.signal import butter, sosfilt

WaveShape = Literal["sine", "saw", "square", "triangle", "noise", "pulse"]


# ── Data Types ───────────────────────────────────────────


@dataclass
class ADSREnvelope:
    """Attack-Decay-Sustain-Release envelope."""

    attack_s: float = 0.01
    decay_s: float = 0.1
    sustain: float = 0.7  # 0-1 level
    release_s: float = 0.3

    def generate(self, duration_s: float, sr: int = 44100) -> NDArray[np.float64]:
        """Generate envelope curve as numpy array."""
        n = int(duration_s * sr)
        env = np.zeros(n, dtype=np.float64)

        a_samp = min(int(self.attack_s * sr), n)
        d_samp = min(int(self.decay_s * sr), n - a_samp)
        r_samp = min(int(self.release_s * sr), n)
        s_samp = max(0, n - a_samp - d_samp - r_samp)

        idx = 0
        if a_samp > 0:
            env[idx : idx + a_samp] = np.linspace(0, 1, a_samp)
            idx += a_samp
        if d_samp > 0:
            env[idx : idx + d_samp] = np.linspace(1, self.sustain, d_samp)
            idx += d_samp
        if s_samp > 0:
            env[idx : idx + s_samp] = self.sustain
            idx += s_samp
        if r_samp > 0 and idx < n:
            remaining = min(r_samp, n - idx)
            env[idx : idx + remaining] = np.linspace(self.sustain, 0, remaining)
        return env


@dataclass
class OscConfig:
    """Oscillator configuration."""

    wave: WaveShape = "saw"
    detune_cents: float = 0.0
    pw: float = 0.5  # Pulse width
    level: float = 1.0


@dataclass
class VoiceConfig:
    """Complete voice configuration."""

    oscillators: list[OscConfig] = field(default_factory=lambda: [OscConfig()])
    envelope: ADSREnvelope = field(default_factory=ADSREnvelope)
    cutoff_hz: float | None = None  # 4th-order lowpass when set


# ── Oscillator Core ──────────────────────────────────────


def _osc_sine(phase: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.sin(2 * np.pi * phase)


def _osc_saw(phase: NDArray[np.float64]) -> NDArray[np.float64]:
    return 2.0 * (phase % 1.0) - 1.0


def _osc_square(phase: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.where(phase % 1.0 < 0.5, 1.0, -1.0)


def _osc_triangle(phase: NDArray[np.float64]) -> NDArray[np.float64]:
    return 2.0 * np.abs(2.0 * (phase % 1.0) - 1.0) - 1.0


def _osc_noise(phase: NDArray[np.float64]) -> NDArray[np.float64]:
    rng = np.random.default_rng(42)
    return rng.uniform(-1, 1, len(phase))


_OSC_MAP = {
    "sine": _osc_sine,
    "saw": _osc_saw,
    "square": _osc_square,
    "triangle": _osc_triangle,
    "noise": _osc_noise,
}


def generate_oscillator(
    freq_hz: float,
    duration_s: float,
    sr: int = 44100,
    config: OscConfig | None = None,
) -> NDArray[np.float64]:
    """Generate a single oscillator waveform."""
    cfg = config or OscConfig()
    n = int(duration_s * sr)
    actual_freq = freq_hz * 2.0 ** (cfg.detune_cents / 1200.0)
    phase = actual_freq * np.arange(n, dtype=np.float64) / sr

    if cfg.wave == "pulse":
        audio = np.where(phase % 1.0 < cfg.pw, 1.0, -1.0)
    else:
        audio = _OSC_MAP.get(cfg.wave, _osc_sine)(phase)
    return audio * cfg.level


def render_voice(
    freq_hz: float,
    duration_s: float,
    sr: int = 44100,
    config: VoiceConfig | None = None,
) -> NDArray[np.float64]:
    """Render one enveloped note, peak-normalized to 0.9."""
    cfg = config or VoiceConfig()
    n = int(duration_s * sr)
    output = np.zeros(n, dtype=np.float64)
    for osc in cfg.oscillators:
        output += generate_oscillator(freq_hz, duration_s, sr, osc)

    if cfg.cutoff_hz and n > 0:
        cutoff = min(cfg.cutoff_hz / (sr / 2.0), 0.99)
        sos = butter(4, cutoff, btype="low", output="sos")
        output = sosfilt(sos, output).astype(np.float64)

    output *= cfg.envelope.generate(duration_s, sr)

    peak = np.max(np.abs(output)) if n else 0.0
    if peak > 0:
        output = output / peak * 0.9
    return output


def note_to_freq(midi_note: float) -> float:
    """Convert MIDI note number to frequency in Hz."""
    return 440.0 * (2.0 ** ((midi_note - 69) / 12.0))


# ── Presets ──────────────────────────────────────────────


PRESETS: dict[str, VoiceConfig] = {
    "default": VoiceConfig(),
    "supersaw": VoiceConfig(
        oscillators=[
            OscConfig(wave="saw", detune_cents=-12, level=0.5),
            OscConfig(wave="saw", level=0.5),
            OscConfig(wave="saw", detune_cents=12, level=0.5),
        ],
        envelope=ADSREnvelope(attack_s=0.02, decay_s=0.2, sustain=0.6, release_s=0.5),
        cutoff_hz=8000,
    ),
    "bass_808": VoiceConfig(
        oscillators=[OscConfig(wave="sine", level=0.9), OscConfig(wave="triangle", level=0.3)],
        envelope=ADSREnvelope(attack_s=0.005, decay_s=0.8, sustain=0.2, release_s=0.3),
        cutoff_hz=200,
    ),
    "pluck": VoiceConfig(
        oscillators=[OscConfig(wave="square", level=0.6)],
        envelope=ADSREnvelope(attack_s=0.001, decay_s=0.15, sustain=0.0, release_s=0.1),
        cutoff_hz=4000,
    ),
    "pad_warm": VoiceConfig(
        oscillators=[OscConfig(wave="triangle"), OscConfig(wave="sine", detune_cents=7)],
        envelope=ADSREnvelope(attack_s=0.3, decay_s=0.4, sustain=0.8, release_s=0.8),
    ),
    "kick": VoiceConfig(
        oscillators=[OscConfig(wave="sine")],
        envelope=ADSREnvelope(attack_s=0.001, decay_s=0.25, sustain=0.0, release_s=0.05),
    ),
    "hat": VoiceConfig(
        oscillators=[OscConfig(wave="noise", level=0.5)],
        envelope=ADSREnvelope(attack_s=0.001, decay_s=0.05, sustain=0.0, release_s=0.02),
    ),
}


def voice_from_settings(preset_name: str | None, settings: dict[str, Any]) -> VoiceConfig:
    """Resolve an instrument's preset name plus per-instrument overrides."""
    base = PRESETS.get(preset_name or "default", PRESETS["default"])
    wave = settings.get("wave")
    oscillators = [OscConfig(wave=wave)] if wave in (*_OSC_MAP, "pulse") else base.oscillators
    env = base.envelope
    envelope = ADSREnvelope(
        attack_s=float(settings.get("attack", env.attack_s)),
        decay_s=float(settings.get("decay", env.decay_s)),
        sustain=float(settings.get("sustain", env.sustain)),
        release_s=float(settings.get("release", env.release_s)),
    )
    cutoff = settings.get("cutoff", base.cutoff_hz)
    return VoiceConfig(
        oscillators=oscillators,
        envelope=envelope,
        cutoff_hz=float(cutoff) if cutoff else None,
    )
