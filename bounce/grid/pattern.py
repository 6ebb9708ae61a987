"""BOUNCE Pattern Model — notes, patterns, and musical timing.

Note positions and lengths are expressed in steps (16 per bar). Everything
duration-related in the export pipeline is derived from these musical units,
never from the length of rendered audio.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

# ── Timing Constants ─────────────────────────────────────

STEPS_PER_BAR = 16
BEATS_PER_BAR = 4
STEPS_PER_BEAT = 4


def steps_to_beats(steps: float) -> float:
    """Convert steps to beats."""
    return steps / STEPS_PER_BEAT


def beats_to_steps(beats: float) -> float:
    """Convert beats to steps."""
    return beats * STEPS_PER_BEAT


def beats_to_seconds(beats: float, bpm: float) -> float:
    """Convert beats to seconds at the given tempo."""
    return beats * (60.0 / bpm)


def seconds_to_beats(seconds: float, bpm: float) -> float:
    """Convert seconds to beats at the given tempo."""
    return seconds * (bpm / 60.0)


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class Note:
    """A single note event inside a pattern."""

    pitch: int = 60  # MIDI note number (0-127)
    time: float = 0.0  # Start, in steps
    length: float = 1.0  # Duration, in steps
    velocity: int = 100  # 1-127

    def __post_init__(self) -> None:
        if not 0 <= self.pitch <= 127:
            raise ValueError(f"pitch out of range: {self.pitch}")
        if self.time < 0:
            raise ValueError("time must be >= 0")
        if self.length <= 0:
            raise ValueError("length must be > 0")

    @property
    def end(self) -> float:
        return self.time + self.length

    def to_dict(self) -> dict[str, Any]:
        return {
            "pitch": self.pitch,
            "time": self.time,
            "length": self.length,
            "velocity": self.velocity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Note:
        return cls(
            pitch=int(data.get("pitch", 60)),
            time=float(data.get("time", data.get("startTime", 0.0)) or 0.0),
            length=float(data.get("length", data.get("duration", 1.0)) or 1.0),
            velocity=int(data.get("velocity", 100)),
        )


@dataclass
class Pattern:
    """A loopable block of notes keyed by instrument id."""

    id: str
    name: str = ""
    data: dict[str, list[Note]] = field(default_factory=dict)
    length_steps: int | None = None  # Declared length; notes may extend it

    @property
    def instrument_ids(self) -> list[str]:
        return list(self.data.keys())

    @property
    def note_count(self) -> int:
        return sum(len(notes) for notes in self.data.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "length_steps": self.length_steps,
            "data": {
                inst_id: [n.to_dict() for n in notes]
                for inst_id, notes in self.data.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Pattern:
        length = data.get("length_steps")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            length_steps=int(length) if length is not None else None,
            data={
                str(inst_id): [Note.from_dict(n) for n in notes or []]
                for inst_id, notes in (data.get("data") or {}).items()
            },
        )


# ── Length Helpers ───────────────────────────────────────


def pattern_length_steps(pattern: Pattern) -> float:
    """Furthest step reached by the pattern (declared length or last note end)."""
    end = float(pattern.length_steps or 0)
    for notes in pattern.data.values():
        for note in notes:
            end = max(end, note.end)
    return end


def pattern_bar_length(pattern: Pattern) -> int:
    """Pattern length in whole bars, never less than one."""
    steps = pattern_length_steps(pattern)
    return max(1, math.ceil(steps / STEPS_PER_BAR))


def pattern_duration_beats(pattern: Pattern) -> float:
    """Musical duration of one pattern loop in beats."""
    return float(pattern_bar_length(pattern) * BEATS_PER_BAR)


def slice_pattern_data(
    data: dict[str, list[Note]],
    start_step: float,
    end_step: float | None,
) -> dict[str, list[Note]]:
    """Keep notes starting inside [start_step, end_step), rebased to start_step."""
    sliced: dict[str, list[Note]] = {}
    for inst_id, notes in data.items():
        kept = [
            Note(
                pitch=n.pitch,
                time=n.time - start_step,
                length=n.length,
                velocity=n.velocity,
            )
            for n in notes
            if n.time >= start_step and (end_step is None or n.time < end_step)
        ]
        sliced[inst_id] = kept
    return sliced
