"""CONSOLE — Export orchestration layer.

Snapshot building, render strategy dispatch, freeze, session isolation and
batch coordination behind the ``ExportManager`` facade.
"""

from bounce.console.catalog import (
    FREEZE_PRESET,
    MIXDOWN_PRESET,
    QUALITY_PRESETS,
    STEMS_PRESET,
    ExportFormat,
    ExportSettings,
    ExportType,
    QualityPreset,
)
from bounce.console.engine import ActiveEngineHandle, AudioEngine
from bounce.console.manager import ExportManager
from bounce.console.workspace import Workspace

__all__ = [
    "FREEZE_PRESET",
    "MIXDOWN_PRESET",
    "QUALITY_PRESETS",
    "STEMS_PRESET",
    "ExportFormat",
    "ExportSettings",
    "ExportType",
    "QualityPreset",
    "ActiveEngineHandle",
    "AudioEngine",
    "ExportManager",
    "Workspace",
]
