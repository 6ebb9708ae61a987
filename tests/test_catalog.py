"""Export catalog tests — quality presets, formats and preset bundles."""

import pytest

from bounce.console.catalog import (
    FREEZE_PRESET,
    MIXDOWN_PRESET,
    PRESET_BUNDLES,
    QUALITY_PRESETS,
    STEMS_PRESET,
    ExportFormat,
    ExportSettings,
    ExportType,
    encoding_bit_depth,
    get_quality_preset,
)


def test_quality_presets():
    assert QUALITY_PRESETS["DEMO"].sample_rate == 22050
    assert QUALITY_PRESETS["STANDARD"].bit_depth == 16
    assert QUALITY_PRESETS["HIGH"].sample_rate == 48000
    assert QUALITY_PRESETS["STUDIO"].bit_depth == 32


def test_get_quality_preset_case_insensitive():
    assert get_quality_preset("high") is QUALITY_PRESETS["HIGH"]
    with pytest.raises(ValueError):
        get_quality_preset("ultra")


def test_encoding_bit_depth_falls_back_to_16():
    """24-bit is not encoded; the writer drops to 16."""
    assert encoding_bit_depth(QUALITY_PRESETS["HIGH"]) == 16
    assert encoding_bit_depth(QUALITY_PRESETS["STUDIO"]) == 32


def test_formats():
    assert ExportFormat.WAV.mime_type == "audio/wav"
    assert ExportFormat.MP3.mime_type == "audio/mpeg"
    assert ExportFormat.OGG.extension == ".ogg"


def test_bundles():
    assert FREEZE_PRESET.export_type == ExportType.FREEZE
    assert FREEZE_PRESET.normalize is False
    assert FREEZE_PRESET.download is False
    assert MIXDOWN_PRESET.quality.name == "HIGH"
    assert STEMS_PRESET.export_type == ExportType.STEMS
    assert set(PRESET_BUNDLES) == {"FREEZE", "MIXDOWN", "STEMS"}


def test_with_overrides_returns_copy():
    base = ExportSettings()
    changed = base.with_overrides(normalize=False)
    assert base.normalize is True
    assert changed.normalize is False
    assert changed.quality is base.quality
