"""BOUNCE Arrangement Model — tracks, clips, and shared audio instances.

Clips place either a pattern or an audio source on an arrangement track.
Audio clips point at a shared ``AudioInstance`` (asset reference, name,
color); per-clip fields such as start, duration, fades and gain are owned by
each clip and copied independently.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

import structlog

logger = structlog.get_logger()

ClipType = Literal["pattern", "audio"]


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


# ── Data Types ───────────────────────────────────────────


@dataclass
class ArrangementTrack:
    """A lane in the arrangement, optionally bound to a mixer channel."""

    id: str
    name: str = ""
    channel_id: str | None = None


@dataclass
class AudioInstance:
    """Shared description of one rendered or uploaded audio source."""

    id: str
    asset_id: str
    name: str = ""
    color: str = "#4a90e2"


@dataclass
class Clip:
    """A placed, timed reference to a pattern or an audio instance.

    ``start_time`` and ``duration`` are in beats.
    """

    id: str
    type: ClipType
    track_id: str
    start_time: float = 0.0
    duration: float = 4.0
    name: str = ""
    pattern_id: str | None = None
    asset_id: str | None = None
    instance_id: str | None = None
    channel_id: str | None = None
    color: str | None = None
    fade_in: float = 0.0
    fade_out: float = 0.0
    gain: float = 1.0
    sample_offset: float = 0.0
    playback_rate: float = 1.0
    is_frozen: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Clip:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class Arrangement:
    """Timeline of clips on tracks, with its own tempo."""

    id: str
    name: str = ""
    tempo: float | None = None
    tracks: list[ArrangementTrack] = field(default_factory=list)
    clips: list[Clip] = field(default_factory=list)
    instances: dict[str, AudioInstance] = field(default_factory=dict)

    # ── Tracks ──

    def get_track(self, track_id: str) -> ArrangementTrack | None:
        return next((t for t in self.tracks if t.id == track_id), None)

    def add_track(self, name: str = "", channel_id: str | None = None) -> ArrangementTrack:
        track = ArrangementTrack(
            id=_new_id("track"),
            name=name or f"Track {len(self.tracks) + 1}",
            channel_id=channel_id,
        )
        self.tracks.append(track)
        return track

    # ── Clips ──

    def add_clip(self, clip: Clip) -> Clip:
        self.clips.append(clip)
        return clip

    def remove_clip(self, clip_id: str) -> None:
        self.clips = [c for c in self.clips if c.id != clip_id]

    def pattern_clips(self, pattern_id: str | None = None) -> list[Clip]:
        """Pattern-type clips, optionally only those referencing ``pattern_id``."""
        return [
            c
            for c in self.clips
            if c.type == "pattern" and (pattern_id is None or c.pattern_id == pattern_id)
        ]

    def last_clip(self) -> Clip | None:
        """Clip with the latest end time (earliest in list order on ties)."""
        latest: Clip | None = None
        for clip in self.clips:
            if latest is None or clip.end_time > latest.end_time:
                latest = clip
        return latest

    # ── Audio Instances ──

    def ensure_instance(self, asset_id: str, name: str = "", color: str = "#4a90e2") -> AudioInstance:
        """Return the instance for ``asset_id``, creating it on first use."""
        for instance in self.instances.values():
            if instance.asset_id == asset_id:
                return instance
        instance = AudioInstance(id=_new_id("instance"), asset_id=asset_id, name=name, color=color)
        self.instances[instance.id] = instance
        return instance

    def add_audio_clip(
        self,
        asset_id: str,
        track_id: str,
        start_time: float,
        duration: float,
        name: str = "",
        color: str = "#4a90e2",
        channel_id: str | None = None,
        is_frozen: bool = False,
        metadata: dict[str, Any] | None = None,
    ) -> Clip:
        """Place an audio clip, sharing the asset's instance with other clips."""
        instance = self.ensure_instance(asset_id, name=name, color=color)
        clip = Clip(
            id=_new_id("clip"),
            type="audio",
            track_id=track_id,
            start_time=start_time,
            duration=duration,
            name=name,
            asset_id=asset_id,
            instance_id=instance.id,
            channel_id=channel_id,
            color=color,
            is_frozen=is_frozen,
            metadata=dict(metadata or {}),
        )
        return self.add_clip(clip)

    def orphaned_instances(self) -> list[AudioInstance]:
        """Instances that no clip references any more.

        These are reported, never deleted: whether they must survive for
        undo/redo is unresolved.
        """
        referenced = {c.instance_id for c in self.clips if c.instance_id}
        orphans = [i for i in self.instances.values() if i.id not in referenced]
        if orphans:
            logger.warning(
                "orphaned_audio_instances",
                arrangement_id=self.id,
                instance_ids=[i.id for i in orphans],
            )
        return orphans

    # ── Serialization ──

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tempo": self.tempo,
            "tracks": [asdict(t) for t in self.tracks],
            "clips": [c.to_dict() for c in self.clips],
            "instances": {k: asdict(v) for k, v in self.instances.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Arrangement:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            tempo=data.get("tempo"),
            tracks=[ArrangementTrack(**t) for t in data.get("tracks", [])],
            clips=[Clip.from_dict(c) for c in data.get("clips", [])],
            instances={
                str(k): AudioInstance(**v) for k, v in (data.get("instances") or {}).items()
            },
        )
