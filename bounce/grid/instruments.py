"""Declared instrument configuration (the store-side view of an instrument)."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

InstrumentType = Literal["synth", "sample"]


@dataclass
class Instrument:
    """Static instrument metadata as stored in the project."""

    id: str
    name: str
    type: InstrumentType = "synth"
    mixer_track_id: str = "master"
    color: str = "#4a90e2"

    # Synth fields
    preset_name: str | None = None
    settings: dict[str, Any] = field(default_factory=dict)
    volume: float = 1.0

    # Sampler fields
    sample_path: str | None = None
    sample_start: float = 0.0  # 0-1 of the sample
    sample_end: float = 1.0
    reverse: bool = False
    pitch: float = 0.0  # Semitones

    muted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Instrument:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
