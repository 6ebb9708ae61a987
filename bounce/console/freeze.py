"""BOUNCE Freeze — turn rendered audio into project assets and arrangement clips.

Durations and positions come from musical units: a frozen pattern's clip is
``bar_length * 4`` beats long and sits exactly where the pattern clip was,
whatever length the renderer actually produced.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from bounce.console.assets import Asset, AssetRegistry
from bounce.errors import AssetCreationFailed
from bounce.grid.arrangement import Arrangement, Clip
from bounce.grid.pattern import BEATS_PER_BAR, Pattern, pattern_bar_length
from bounce.hands.processor import AudioBuffer

logger = structlog.get_logger()

FROZEN_CLIP_COLOR = "#4a90e2"


# ── Collaborators ────────────────────────────────────────


class TransportNotifier(Protocol):
    """Playback side; only told about replacements, never driven."""

    def pattern_replaced(self, pattern_id: str, clip: Clip) -> None: ...


class LoggingTransport:
    def pattern_replaced(self, pattern_id: str, clip: Clip) -> None:
        logger.info("transport_pattern_replaced", pattern_id=pattern_id, clip_id=clip.id)


# ── Timing ───────────────────────────────────────────────


def freeze_duration_beats(pattern: Pattern) -> float:
    """Musical length of a frozen pattern, from its bar length."""
    return float(pattern_bar_length(pattern) * BEATS_PER_BAR)


def buffer_duration_beats(buffer: AudioBuffer, bpm: float) -> float:
    """Beats spanned by a buffer at ``bpm``; used for exports without a pattern grid."""
    return buffer.duration / 60.0 * bpm


def cpu_savings(pattern: Pattern, instrument_count: int | None = None) -> int:
    """Estimated CPU saving (percent) of replacing ``pattern`` with audio."""
    instruments = instrument_count if instrument_count is not None else len(pattern.data)
    notes = pattern.note_count
    savings = 60
    if instruments > 5:
        savings += 5
    if notes > 50:
        savings += 5
    if instruments > 10:
        savings += 10
    return min(savings, 80)


# ── Materializer ─────────────────────────────────────────


@dataclass
class PlacedClip:
    clip: Clip
    replaced: bool


class AssetMaterializer:
    """Registers rendered buffers as assets and places them on arrangements."""

    def __init__(
        self,
        registry: AssetRegistry,
        transport: TransportNotifier | None = None,
    ) -> None:
        self.registry = registry
        self.transport = transport or LoggingTransport()

    def create_asset(
        self,
        buffer: AudioBuffer,
        name: str,
        source_id: str,
        duration_beats: float,
        kind: str = "export",
        metadata: dict[str, Any] | None = None,
    ) -> str | None:
        """Register ``buffer``; returns the asset id, or None when registration fails."""
        asset_id = f"asset-{kind}-{source_id}-{uuid.uuid4().hex[:8]}"
        meta = {
            "source_id": source_id,
            "duration_beats": duration_beats,
            "sample_rate": buffer.sample_rate,
            "duration": buffer.duration,
            "channels": buffer.number_of_channels,
            kind: True,
        }
        meta.update(metadata or {})
        try:
            self.registry.add_asset(Asset(id=asset_id, name=name, buffer=buffer, metadata=meta))
        except AssetCreationFailed as exc:
            logger.error("asset_creation_failed", source_id=source_id, error=str(exc))
            return None
        return asset_id

    def append_clip(
        self,
        arrangement: Arrangement,
        asset_id: str,
        name: str,
        duration_beats: float,
        channel_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Clip:
        """Place an audio clip right after the clip that ends last."""
        last = arrangement.last_clip()
        if last is not None:
            start_time, track_id = last.end_time, last.track_id
        elif arrangement.tracks:
            start_time, track_id = 0.0, arrangement.tracks[0].id
        else:
            start_time, track_id = 0.0, arrangement.add_track().id

        track = arrangement.get_track(track_id)
        routed = (track.channel_id if track else None) or channel_id
        clip = arrangement.add_audio_clip(
            asset_id=asset_id,
            track_id=track_id,
            start_time=start_time,
            duration=duration_beats,
            name=name,
            color=FROZEN_CLIP_COLOR,
            channel_id=routed,
            metadata=metadata,
        )
        logger.info(
            "audio_clip_appended",
            clip_id=clip.id,
            track_id=track_id,
            start_time=round(start_time, 3),
        )
        return clip

    def replace_pattern(
        self,
        arrangement: Arrangement,
        pattern: Pattern,
        asset_id: str,
        name: str | None = None,
    ) -> PlacedClip:
        """Swap every clip of ``pattern`` for one frozen audio clip.

        The audio clip inherits the first pattern clip's track, start and
        channel. Without an existing pattern clip it is appended instead.
        """
        duration = freeze_duration_beats(pattern)
        label = name or f"Frozen {pattern.name or pattern.id}"
        existing = arrangement.pattern_clips(pattern.id)
        metadata = {"original_pattern_id": pattern.id, "duration_beats": duration}

        if not existing:
            logger.warning("no_pattern_clip_to_replace", pattern_id=pattern.id)
            clip = self.append_clip(arrangement, asset_id, label, duration, metadata=metadata)
            return PlacedClip(clip=clip, replaced=False)

        original = min(existing, key=lambda c: c.start_time)
        for old in existing:
            arrangement.remove_clip(old.id)

        clip = arrangement.add_audio_clip(
            asset_id=asset_id,
            track_id=original.track_id,
            start_time=original.start_time,
            duration=duration,
            name=label,
            color=FROZEN_CLIP_COLOR,
            channel_id=original.channel_id,
            is_frozen=True,
            metadata=metadata,
        )
        logger.info(
            "pattern_frozen",
            pattern_id=pattern.id,
            clip_id=clip.id,
            start_time=original.start_time,
            duration_beats=duration,
            removed=len(existing),
        )
        self.transport.pattern_replaced(pattern.id, clip)
        arrangement.orphaned_instances()
        return PlacedClip(clip=clip, replaced=True)
