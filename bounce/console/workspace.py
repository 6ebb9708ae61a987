"""BOUNCE Workspace — the live project stores the export pipeline reads and swaps.

Holds instruments, patterns, arrangements and mixer channels. An export
session serializes these, clears them, loads the export target, and later
restores the captured state.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

import structlog

from bounce.config import settings
from bounce.console.channels import MixerChannel
from bounce.grid.arrangement import Arrangement
from bounce.grid.instruments import Instrument
from bounce.grid.pattern import Pattern

logger = structlog.get_logger()


@dataclass
class Workspace:
    """Mutable in-memory project stores."""

    instruments: dict[str, Instrument] = field(default_factory=dict)
    patterns: dict[str, Pattern] = field(default_factory=dict)
    arrangements: dict[str, Arrangement] = field(default_factory=dict)
    mixer_tracks: dict[str, MixerChannel] = field(default_factory=dict)
    active_pattern_id: str | None = None
    active_arrangement_id: str | None = None
    bpm: float = settings.default_bpm
    project_audio: list[dict[str, Any]] = field(default_factory=list)

    # ── Accessors ──

    @property
    def active_pattern(self) -> Pattern | None:
        return self.patterns.get(self.active_pattern_id) if self.active_pattern_id else None

    @property
    def active_arrangement(self) -> Arrangement | None:
        if self.active_arrangement_id:
            return self.arrangements.get(self.active_arrangement_id)
        return None

    def add_instrument(self, instrument: Instrument) -> Instrument:
        self.instruments[instrument.id] = instrument
        return instrument

    def add_pattern(self, pattern: Pattern) -> Pattern:
        self.patterns[pattern.id] = pattern
        if self.active_pattern_id is None:
            self.active_pattern_id = pattern.id
        return pattern

    def add_arrangement(self, arrangement: Arrangement) -> Arrangement:
        self.arrangements[arrangement.id] = arrangement
        if self.active_arrangement_id is None:
            self.active_arrangement_id = arrangement.id
        return arrangement

    def add_channel(self, channel: MixerChannel) -> MixerChannel:
        self.mixer_tracks[channel.id] = channel
        return channel

    # ── Lifecycle ──

    def serialize(self) -> dict[str, Any]:
        """Deep, JSON-compatible copy of every store."""
        return {
            "instruments": [i.to_dict() for i in self.instruments.values()],
            "patterns": [p.to_dict() for p in self.patterns.values()],
            "arrangements": [a.to_dict() for a in self.arrangements.values()],
            "mixer_tracks": [c.to_dict() for c in self.mixer_tracks.values()],
            "active_pattern_id": self.active_pattern_id,
            "active_arrangement_id": self.active_arrangement_id,
            "bpm": self.bpm,
            "project_audio": copy.deepcopy(self.project_audio),
        }

    def clear(self) -> None:
        self.instruments.clear()
        self.patterns.clear()
        self.arrangements.clear()
        self.mixer_tracks.clear()
        self.active_pattern_id = None
        self.active_arrangement_id = None
        self.bpm = settings.default_bpm
        self.project_audio = []

    def load(self, data: dict[str, Any]) -> None:
        """Replace store contents with ``data`` (as produced by ``serialize``)."""
        self.clear()
        for raw in data.get("instruments", []):
            self.add_instrument(Instrument.from_dict(raw))
        for raw in data.get("patterns", []):
            self.patterns[str(raw["id"])] = Pattern.from_dict(raw)
        for raw in data.get("arrangements", []):
            self.arrangements[str(raw["id"])] = Arrangement.from_dict(raw)
        for raw in data.get("mixer_tracks", []):
            self.add_channel(MixerChannel.from_dict(raw))
        self.active_pattern_id = data.get("active_pattern_id")
        self.active_arrangement_id = data.get("active_arrangement_id")
        self.bpm = float(data.get("bpm") or settings.default_bpm)
        self.project_audio = copy.deepcopy(data.get("project_audio") or [])
        logger.debug(
            "workspace_loaded",
            instruments=len(self.instruments),
            patterns=len(self.patterns),
            mixer_tracks=len(self.mixer_tracks),
        )


def is_trivial(data: dict[str, Any] | None) -> bool:
    """True when a serialized workspace has nothing worth restoring."""
    if not data:
        return True
    track_count = sum(len(a.get("tracks", [])) for a in data.get("arrangements", []))
    return not (
        data.get("instruments")
        or data.get("patterns")
        or track_count
        or data.get("mixer_tracks")
    )
