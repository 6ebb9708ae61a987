"""BOUNCE Offline Engine — deterministic numpy renderer for pattern snapshots.

Renders each instrument's notes, runs them through their mixer channels
(inserts, 3-band EQ, gain, constant-power pan), routes pre/post-fader sends
into buses (processed in dependency order, cycles cut), sums everything
into master and applies the master volume.

Render length comes from the snapshot's bar length plus a short tail,
clamped to the configured min/max render time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from functools import lru_cache

import numpy as np
import soundfile as sf
import structlog
from numpy.typing import NDArray

from bounce.config import Settings, settings as default_settings
from bounce.console.channels import MASTER_CHANNEL_ID, InsertEffect
from bounce.console.engine import LiveInstrumentState, RenderOptions, RenderResult, SequenceEntry
from bounce.console.snapshot import ChannelSnapshot, InstrumentSnapshot, PatternSnapshot
from bounce.errors import EngineUnavailable, RenderFailed
from bounce.grid.pattern import BEATS_PER_BAR, STEPS_PER_BEAT, Note, beats_to_seconds
from bounce.hands import processor
from bounce.hands.processor import AudioBuffer, CompressorOptions, ReverbOptions
from bounce.hands.synth import note_to_freq, render_voice, voice_from_settings

logger = structlog.get_logger()

Stereo = NDArray[np.float64]

EQ_LOW_HZ = 250.0
EQ_HIGH_HZ = 4000.0


# ── Sample Loading ───────────────────────────────────────


@lru_cache(maxsize=64)
def _load_sample(path: str) -> tuple[NDArray[np.float64], int]:
    """Read an audio file as mono float64."""
    try:
        data, sr = sf.read(path, dtype="float64", always_2d=True)
    except (RuntimeError, OSError) as exc:
        raise RenderFailed(f"Cannot load sample {path}: {exc}") from exc
    return data.mean(axis=1), int(sr)


def _resample(audio: NDArray[np.float64], ratio: float) -> NDArray[np.float64]:
    """Linear-interpolation playback at ``ratio`` times the original speed."""
    if ratio == 1.0 or len(audio) < 2:
        return audio
    n_out = max(1, int(len(audio) / ratio))
    positions = np.arange(n_out, dtype=np.float64) * ratio
    return np.interp(positions, np.arange(len(audio), dtype=np.float64), audio)


# ── Channel DSP ──────────────────────────────────────────


def _db_to_gain(db: float) -> float:
    return float(10 ** (db / 20.0))


def _apply_insert(buffer: AudioBuffer, fx: InsertEffect) -> AudioBuffer:
    s = fx.settings
    kind = fx.type.lower()
    if kind == "compressor":
        return processor.compress(
            buffer,
            CompressorOptions(
                threshold=float(s.get("threshold", 0.7)),
                ratio=float(s.get("ratio", 4.0)),
                attack=float(s.get("attack", 0.01)),
                release=float(s.get("release", 0.1)),
            ),
        )
    if kind == "reverb":
        return processor.reverb(
            buffer,
            ReverbOptions(
                room_size=float(s.get("room_size", 0.5)),
                damping=float(s.get("damping", 0.5)),
                wet_level=float(s.get("wet_level", 0.3)),
                seed=int(s.get("seed", 0)),
            ),
        )
    if kind == "highpass":
        return processor.highpass(buffer, float(s.get("frequency", 80.0)))
    if kind == "lowpass":
        return processor.lowpass(buffer, float(s.get("frequency", 8000.0)))
    if kind == "gain":
        return processor.gain(buffer, float(s.get("value", 1.0)))
    logger.debug("insert_effect_passthrough", effect_id=fx.id, effect_type=fx.type)
    return buffer


def _apply_eq(buffer: AudioBuffer, channel: ChannelSnapshot) -> AudioBuffer:
    if not (channel.eq_low or channel.eq_mid or channel.eq_high):
        return buffer
    low = processor.lowpass(buffer, EQ_LOW_HZ).data
    high = processor.highpass(buffer, EQ_HIGH_HZ).data
    mid = buffer.data - low - high
    out = (
        low * _db_to_gain(channel.eq_low)
        + mid * _db_to_gain(channel.eq_mid)
        + high * _db_to_gain(channel.eq_high)
    )
    return AudioBuffer(out, buffer.sample_rate)


def _pan_gains(position: float) -> tuple[float, float]:
    """Constant-power pan law, -1 (left) to +1 (right)."""
    angle = (max(-1.0, min(1.0, position)) + 1) * 0.25 * np.pi
    return float(np.cos(angle)), float(np.sin(angle))


def _process_channel(
    channel: ChannelSnapshot,
    audio: Stereo,
    sr: int,
    include_effects: bool,
) -> tuple[Stereo, Stereo]:
    """Return (pre_fader, post_fader) stereo signals for ``channel``."""
    if channel.mute:
        silent = np.zeros_like(audio)
        return silent, silent

    buffer = AudioBuffer(audio, sr)
    if include_effects:
        for fx in channel.insert_effects:
            if not fx.bypass:
                buffer = _apply_insert(buffer, fx)
    buffer = _apply_eq(buffer, channel)

    pre = buffer.data
    left, right = _pan_gains(channel.pan)
    post = pre * channel.gain
    post = np.vstack([post[0] * left, post[1] * right])
    return pre, post


def _bus_order(buses: list[str], tracks: Mapping[str, ChannelSnapshot]) -> list[str]:
    """Buses sorted so senders come before receivers; cycle members keep input order."""
    edges = {
        b: {s.bus_id for s in tracks[b].sends if s.bus_id in buses and s.bus_id != b}
        for b in buses
    }
    indegree = {b: 0 for b in buses}
    for targets in edges.values():
        for t in targets:
            indegree[t] += 1

    ready = [b for b in buses if indegree[b] == 0]
    order: list[str] = []
    while ready:
        node = ready.pop(0)
        order.append(node)
        for t in sorted(edges[node], key=buses.index):
            indegree[t] -= 1
            if indegree[t] == 0:
                ready.append(t)

    leftover = [b for b in buses if b not in order]
    if leftover:
        logger.warning("bus_send_cycle_cut", buses=leftover)
    return order + leftover


def mix_snapshot(
    tracks: Mapping[str, ChannelSnapshot],
    channel_inputs: dict[str, Stereo],
    unrouted: Stereo,
    sr: int,
    include_effects: bool,
) -> Stereo:
    """Run channel inputs through tracks, buses and master; returns the master output."""
    frames = unrouted.shape[1]
    receivers = {s.bus_id for ch in tracks.values() for s in ch.sends}
    bus_ids = [
        cid for cid, ch in tracks.items()
        if cid != MASTER_CHANNEL_ID and (ch.type == "bus" or cid in receivers)
    ]
    track_ids = [cid for cid in tracks if cid != MASTER_CHANNEL_ID and cid not in bus_ids]

    inputs = {cid: channel_inputs.get(cid, np.zeros((2, frames))).copy() for cid in tracks}
    master_in = unrouted.copy()
    done: set[str] = set()

    def _run(cid: str) -> None:
        nonlocal master_in
        pre, post = _process_channel(tracks[cid], inputs[cid], sr, include_effects)
        for send in tracks[cid].sends:
            if send.bus_id == MASTER_CHANNEL_ID:
                master_in += (pre if send.pre_fader else post) * send.level
            elif send.bus_id in done:
                logger.debug("late_send_dropped", source=cid, bus_id=send.bus_id)
            elif send.bus_id in inputs:
                inputs[send.bus_id] += (pre if send.pre_fader else post) * send.level
        master_in += post
        done.add(cid)

    for cid in track_ids:
        _run(cid)
    for cid in _bus_order(bus_ids, tracks):
        _run(cid)

    # Audio routed straight to master enters as its channel input.
    if MASTER_CHANNEL_ID in tracks:
        master_in += inputs[MASTER_CHANNEL_ID]
        _, out = _process_channel(tracks[MASTER_CHANNEL_ID], master_in, sr, include_effects)
        return out
    return master_in


# ── Engine ───────────────────────────────────────────────


class OfflineEngine:
    """Render engine plus the live-engine lifecycle the export session drives."""

    def __init__(
        self,
        master_volume: float = 0.8,
        live_state: Mapping[str, LiveInstrumentState] | None = None,
        config: Settings | None = None,
    ) -> None:
        self._master_volume = master_volume
        self._live = dict(live_state or {})
        self.config = config or default_settings
        self.initialized = False
        self.running = False
        self.disposed = False

    # ── Lifecycle ──

    async def initialize(self) -> None:
        if self.disposed:
            raise EngineUnavailable("Engine was disposed")
        self.initialized = True

    async def resume(self) -> None:
        if not self.initialized:
            raise EngineUnavailable("Engine not initialized")
        self.running = True

    def dispose(self) -> None:
        self.running = False
        self.disposed = True

    @property
    def master_volume(self) -> float:
        return self._master_volume

    def set_live_state(self, instrument_id: str, state: LiveInstrumentState) -> None:
        self._live[instrument_id] = state

    def live_instrument_state(self, instrument_id: str) -> LiveInstrumentState | None:
        return self._live.get(instrument_id)

    # ── Timing ──

    def _frames_for(self, beats: float, bpm: float, sr: int) -> int:
        seconds = beats_to_seconds(beats + self.config.render_tail_beats, bpm)
        if seconds > self.config.max_render_seconds:
            raise RenderFailed(
                f"Render length {seconds:.1f}s exceeds limit of {self.config.max_render_seconds:.0f}s"
            )
        return int(max(seconds, self.config.min_render_seconds) * sr)

    # ── Voices ──

    def _render_note(
        self,
        instrument: InstrumentSnapshot,
        note: Note,
        step_s: float,
        sr: int,
    ) -> NDArray[np.float64]:
        level = note.velocity / 127.0 * instrument.volume
        if instrument.type == "sample" and instrument.sample_path:
            audio, file_sr = _load_sample(instrument.sample_path)
            lo = int(instrument.sample_start * len(audio))
            hi = int(instrument.sample_end * len(audio))
            region = audio[lo:hi]
            if instrument.reverse:
                region = region[::-1]
            semitones = instrument.pitch + (note.pitch - 60)
            ratio = 2.0 ** (semitones / 12.0) * file_sr / sr
            return _resample(region, ratio) * level

        voice = voice_from_settings(instrument.preset_name, dict(instrument.settings))
        freq = note_to_freq(note.pitch + instrument.pitch)
        return render_voice(freq, note.length * step_s, sr, voice) * level

    def _render_instruments(
        self,
        snapshot: PatternSnapshot,
        frames: int,
        duration_steps: float,
        bpm: float,
        sr: int,
    ) -> tuple[dict[str, Stereo], Stereo]:
        step_s = 60.0 / bpm / STEPS_PER_BEAT
        loop_steps = max(snapshot.bar_length * BEATS_PER_BAR * STEPS_PER_BEAT, 1)
        channel_inputs: dict[str, Stereo] = {}
        unrouted = np.zeros((2, frames), dtype=np.float64)

        for inst_id, notes in snapshot.data.items():
            instrument = snapshot.instruments.get(inst_id)
            if instrument is None or instrument.muted:
                continue
            mono = np.zeros(frames, dtype=np.float64)
            offset = 0.0
            while offset < duration_steps:
                for note in notes:
                    start_step = note.time + offset
                    if start_step >= duration_steps:
                        continue
                    start = int(start_step * step_s * sr)
                    if start >= frames:
                        continue
                    audio = self._render_note(instrument, note, step_s, sr)
                    end = min(start + len(audio), frames)
                    mono[start:end] += audio[: end - start]
                offset += loop_steps

            stereo = np.vstack([mono, mono])
            if instrument.channel_id in snapshot.mixer_tracks:
                target = channel_inputs.setdefault(
                    instrument.channel_id, np.zeros((2, frames), dtype=np.float64)
                )
                target += stereo
            else:
                unrouted += stereo
        return channel_inputs, unrouted

    def _render_sync(
        self,
        snapshot: PatternSnapshot,
        options: RenderOptions,
        duration_beats: float,
    ) -> Stereo:
        sr = options.sample_rate
        frames = self._frames_for(duration_beats, options.bpm, sr)
        channel_inputs, unrouted = self._render_instruments(
            snapshot, frames, duration_beats * STEPS_PER_BEAT, options.bpm, sr
        )
        mixed = mix_snapshot(
            snapshot.mixer_tracks, channel_inputs, unrouted, sr, options.include_effects
        )
        return mixed * self._master_volume

    # ── Render entry points ──

    async def render_pattern(self, snapshot: PatternSnapshot, options: RenderOptions) -> RenderResult:
        if not self.running:
            logger.debug("render_without_resume", engine=type(self).__name__)
        beats = float(snapshot.bar_length * BEATS_PER_BAR)
        mixed = await asyncio.to_thread(self._render_sync, snapshot, options, beats)
        logger.info(
            "pattern_rendered",
            pattern_id=snapshot.pattern_id,
            instruments=len(snapshot.instruments),
            frames=mixed.shape[1],
        )
        return RenderResult(
            audio_buffer=AudioBuffer(mixed, options.sample_rate),
            metadata={"duration_beats": beats, "bpm": options.bpm},
        )

    def _render_arrangement_sync(self, sequence: list[SequenceEntry], options: RenderOptions) -> Stereo:
        sr = options.sample_rate
        total_beats = max(e.start_time + e.duration for e in sequence)
        frames = self._frames_for(total_beats, options.bpm, sr)
        out = np.zeros((2, frames), dtype=np.float64)

        for entry in sequence:
            clip_audio = self._render_sync(entry.snapshot, options, entry.duration)
            start = int(beats_to_seconds(entry.start_time, options.bpm) * sr)
            end = min(start + clip_audio.shape[1], frames)
            if end > start:
                out[:, start:end] += clip_audio[:, : end - start]
        return out

    async def render_arrangement(
        self, sequence: list[SequenceEntry], options: RenderOptions
    ) -> RenderResult:
        if not sequence:
            raise RenderFailed("Empty arrangement sequence")
        mixed = await asyncio.to_thread(self._render_arrangement_sync, sequence, options)
        logger.info("arrangement_rendered", entries=len(sequence), frames=mixed.shape[1])
        return RenderResult(audio_buffer=AudioBuffer(mixed, options.sample_rate), metadata={"bpm": options.bpm})
