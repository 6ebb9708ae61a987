"""BOUNCE Export Catalog — formats, quality presets, export types and preset bundles.

Static tables only. Nothing here is mutated at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from bounce.hands.wav import SUPPORTED_BIT_DEPTHS


# ── Formats ──────────────────────────────────────────────


class ExportFormat(str, Enum):
    """Container formats. Only WAV is actually encoded."""

    WAV = "wav"
    MP3 = "mp3"
    OGG = "ogg"
    FLAC = "flac"

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]

    @property
    def extension(self) -> str:
        return f".{self.value}"


_MIME_TYPES = {
    ExportFormat.WAV: "audio/wav",
    ExportFormat.MP3: "audio/mpeg",
    ExportFormat.OGG: "audio/ogg",
    ExportFormat.FLAC: "audio/flac",
}


# ── Quality ──────────────────────────────────────────────


@dataclass(frozen=True)
class QualityPreset:
    """Sample rate, bit depth and a 0-1 quality factor."""

    name: str
    sample_rate: int
    bit_depth: int
    quality: float


QUALITY_PRESETS: dict[str, QualityPreset] = {
    "DEMO": QualityPreset("DEMO", 22050, 16, 0.7),
    "STANDARD": QualityPreset("STANDARD", 44100, 16, 0.8),
    "HIGH": QualityPreset("HIGH", 48000, 24, 0.9),
    "STUDIO": QualityPreset("STUDIO", 96000, 32, 1.0),
}


def get_quality_preset(name: str) -> QualityPreset:
    try:
        return QUALITY_PRESETS[name.upper()]
    except KeyError:
        raise ValueError(f"Unknown quality preset: {name}") from None


def encoding_bit_depth(preset: QualityPreset) -> int:
    """Bit depth actually written; anything the encoder lacks falls back to 16."""
    return preset.bit_depth if preset.bit_depth in SUPPORTED_BIT_DEPTHS else 16


# ── Export Types ─────────────────────────────────────────


class ExportType(str, Enum):
    PATTERN = "pattern"
    CHANNELS = "channels"
    STEMS = "stems"
    FREEZE = "freeze"
    ARRANGEMENT = "arrangement"
    SELECTION = "selection"


@dataclass(frozen=True)
class ExportSettings:
    """Per-call export configuration."""

    format: ExportFormat = ExportFormat.WAV
    quality: QualityPreset = QUALITY_PRESETS["STANDARD"]
    export_type: ExportType = ExportType.PATTERN
    normalize: bool = True
    fade_in: bool = False
    fade_in_duration: float = 0.01
    fade_out: bool = True
    fade_out_duration: float = 0.1
    include_effects: bool = True
    file_name_template: str = "{patternName}_{timestamp}"
    download: bool = True
    add_to_project: bool = False
    add_to_arrangement: bool = False
    start_time: float | None = None  # Selection start, in steps
    end_time: float | None = None  # Selection end, in steps

    def with_overrides(self, **changes: Any) -> ExportSettings:
        return replace(self, **changes)


# ── Preset Bundles ───────────────────────────────────────


FREEZE_PRESET = ExportSettings(
    export_type=ExportType.FREEZE,
    quality=QUALITY_PRESETS["STANDARD"],
    normalize=False,
    fade_out=False,
    include_effects=True,
    file_name_template="{patternName}_frozen",
    download=False,
    add_to_project=True,
)

MIXDOWN_PRESET = ExportSettings(
    export_type=ExportType.PATTERN,
    quality=QUALITY_PRESETS["HIGH"],
    normalize=True,
    fade_out=True,
    include_effects=True,
    file_name_template="{patternName}_mixdown_{timestamp}",
    download=True,
)

STEMS_PRESET = ExportSettings(
    export_type=ExportType.STEMS,
    quality=QUALITY_PRESETS["HIGH"],
    normalize=True,
    fade_out=False,
    include_effects=True,
    file_name_template="{patternName}_{channelName}_{timestamp}",
    download=True,
)

PRESET_BUNDLES: dict[str, ExportSettings] = {
    "FREEZE": FREEZE_PRESET,
    "MIXDOWN": MIXDOWN_PRESET,
    "STEMS": STEMS_PRESET,
}
