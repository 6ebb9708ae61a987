"""BOUNCE Snapshot Builder — immutable, render-ready projection of a pattern and its mix.

A snapshot restricts a pattern to a set of instruments, merges each
instrument's declared config with the live engine's current values, and
serializes every mixer channel the audio can reach: the instruments' own
channels, optionally master, and every bus reachable through sends.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any

import structlog

from bounce.console.channels import MASTER_CHANNEL_ID, InsertEffect, MixerChannel, Send, default_master
from bounce.console.engine import ActiveEngineHandle, LiveInstrumentState
from bounce.console.workspace import Workspace
from bounce.grid.instruments import Instrument
from bounce.grid.pattern import STEPS_PER_BAR, Note, Pattern, pattern_length_steps

logger = structlog.get_logger()


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class InstrumentSnapshot:
    """Declared instrument config reconciled with live engine state."""

    id: str
    name: str
    type: str
    channel_id: str
    color: str
    preset_name: str | None
    settings: Mapping[str, Any]
    volume: float
    sample_path: str | None
    sample_start: float
    sample_end: float
    reverse: bool
    pitch: float
    muted: bool


@dataclass(frozen=True)
class ChannelSnapshot:
    id: str
    name: str
    type: str
    gain: float
    pan: float
    mute: bool
    eq_low: float
    eq_mid: float
    eq_high: float
    insert_effects: tuple[InsertEffect, ...]
    sends: tuple[Send, ...]


@dataclass(frozen=True)
class PatternSnapshot:
    """Everything a render engine needs for one pattern render."""

    pattern_id: str
    name: str
    length_steps: float
    data: Mapping[str, tuple[Note, ...]]
    instruments: Mapping[str, InstrumentSnapshot]
    mixer_tracks: Mapping[str, ChannelSnapshot]

    @property
    def bar_length(self) -> int:
        return max(1, math.ceil(self.length_steps / STEPS_PER_BAR))

    @property
    def note_count(self) -> int:
        return sum(len(n) for n in self.data.values())


# ── Live/Declared Reconciliation ─────────────────────────

# Field      | Winner
# -----------+---------------------------------------------
# preset     | live, else declared
# settings   | declared, overlaid key-by-key with live
# volume     | live, else declared
# sample_*   | live, else declared (start, end)
# reverse    | live, else declared
# pitch      | live, else declared
# muted      | live, else declared
# identity   | declared (id, name, type, channel, color, sample_path)


def _pick(live: Any, declared: Any) -> Any:
    return declared if live is None else live


def merge_instrument_state(
    declared: Instrument,
    live: LiveInstrumentState | None,
) -> InstrumentSnapshot:
    """Reconcile declared instrument config with the engine's current values."""
    state = live or LiveInstrumentState()
    merged_settings = dict(declared.settings)
    if state.settings:
        merged_settings.update(state.settings)

    return InstrumentSnapshot(
        id=declared.id,
        name=declared.name,
        type=declared.type,
        channel_id=declared.mixer_track_id or MASTER_CHANNEL_ID,
        color=declared.color,
        preset_name=_pick(state.preset_name, declared.preset_name),
        settings=MappingProxyType(copy.deepcopy(merged_settings)),
        volume=float(_pick(state.volume, declared.volume)),
        sample_path=declared.sample_path,
        sample_start=float(_pick(state.sample_start, declared.sample_start)),
        sample_end=float(_pick(state.sample_end, declared.sample_end)),
        reverse=bool(_pick(state.reverse, declared.reverse)),
        pitch=float(_pick(state.pitch, declared.pitch)),
        muted=bool(_pick(state.muted, declared.muted)),
    )


def _freeze_effect(effect: InsertEffect) -> InsertEffect:
    return replace(effect, settings=MappingProxyType(copy.deepcopy(dict(effect.settings))))


def serialize_channel(channel: MixerChannel, allowed_buses: set[str] | None = None) -> ChannelSnapshot:
    """Freeze a mixer channel; sends outside ``allowed_buses`` are dropped."""
    sends = tuple(
        s for s in channel.sends if allowed_buses is None or s.bus_id in allowed_buses
    )
    return ChannelSnapshot(
        id=channel.id,
        name=channel.name,
        type=channel.type,
        gain=channel.gain,
        pan=channel.pan,
        mute=channel.mute,
        eq_low=channel.eq.low,
        eq_mid=channel.eq.mid,
        eq_high=channel.eq.high,
        insert_effects=tuple(_freeze_effect(fx) for fx in channel.insert_effects),
        sends=sends,
    )


# ── Builder ──────────────────────────────────────────────


def _resolve_channels(
    workspace: Workspace,
    seed_ids: Iterable[str],
) -> dict[str, MixerChannel]:
    """Seed channels plus every bus reachable from them through sends."""
    included: dict[str, MixerChannel] = {}
    pending = list(seed_ids)
    visited: set[str] = set()

    while pending:
        channel_id = pending.pop(0)
        if channel_id in visited:
            continue
        visited.add(channel_id)

        channel = workspace.mixer_tracks.get(channel_id)
        if channel is None:
            if channel_id == MASTER_CHANNEL_ID:
                channel = default_master()
            else:
                logger.warning("unknown_mixer_channel", channel_id=channel_id)
                continue

        included[channel.id] = channel
        pending.extend(s.bus_id for s in channel.sends if s.bus_id not in visited)

    return included


def build_snapshot(
    pattern: Pattern,
    workspace: Workspace,
    handle: ActiveEngineHandle,
    instrument_ids: Iterable[str] | None = None,
    include_master_channel: bool = False,
    data: Mapping[str, list[Note]] | None = None,
    length_steps: float | None = None,
) -> PatternSnapshot:
    """Project ``pattern`` (or ``data``, a pre-sliced copy of it) into a snapshot.

    Raises ``EngineUnavailable`` when no engine is installed in ``handle``.
    """
    engine = handle.require()
    source = data if data is not None else pattern.data
    wanted = list(instrument_ids) if instrument_ids is not None else list(source.keys())

    notes: dict[str, tuple[Note, ...]] = {}
    instruments: dict[str, InstrumentSnapshot] = {}
    for inst_id in wanted:
        if inst_id not in source:
            continue
        declared = workspace.instruments.get(inst_id)
        if declared is None:
            logger.warning("undeclared_instrument_skipped", instrument_id=inst_id, pattern_id=pattern.id)
            continue
        notes[inst_id] = tuple(source[inst_id])
        instruments[inst_id] = merge_instrument_state(declared, engine.live_instrument_state(inst_id))

    seeds = list(dict.fromkeys(i.channel_id for i in instruments.values()))
    if include_master_channel and MASTER_CHANNEL_ID not in seeds:
        seeds.append(MASTER_CHANNEL_ID)

    channels = _resolve_channels(workspace, seeds)
    allowed = set(channels)
    for channel in channels.values():
        for send in channel.sends:
            if send.bus_id not in allowed:
                logger.warning("send_target_dropped", channel_id=channel.id, bus_id=send.bus_id)

    mixer_tracks = {cid: serialize_channel(ch, allowed) for cid, ch in channels.items()}

    logger.debug(
        "snapshot_built",
        pattern_id=pattern.id,
        instruments=len(instruments),
        channels=list(mixer_tracks),
    )
    return PatternSnapshot(
        pattern_id=pattern.id,
        name=pattern.name,
        length_steps=length_steps if length_steps is not None else pattern_length_steps(pattern),
        data=MappingProxyType(notes),
        instruments=MappingProxyType(instruments),
        mixer_tracks=MappingProxyType(mixer_tracks),
    )
