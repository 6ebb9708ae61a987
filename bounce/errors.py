"""Export error taxonomy.

Single-item operations raise these to their caller. Batch operations catch
them per item. ``AssetCreationFailed`` and ``WorkspaceRestoreFailed`` are
raised internally but logged and swallowed by the components that own them.
"""

from __future__ import annotations


class ExportError(Exception):
    """Base class for every export pipeline failure."""


class PatternNotFound(ExportError):
    def __init__(self, pattern_id: str) -> None:
        super().__init__(f"Pattern {pattern_id} not found")
        self.pattern_id = pattern_id


class ArrangementNotFound(ExportError):
    def __init__(self, arrangement_id: str) -> None:
        super().__init__(f"Arrangement {arrangement_id} not found")
        self.arrangement_id = arrangement_id


class EngineUnavailable(ExportError):
    def __init__(self, message: str = "Audio engine not available") -> None:
        super().__init__(message)


class UnsupportedExportType(ExportError):
    def __init__(self, export_type: object) -> None:
        super().__init__(f"Export type {export_type!r} not supported")
        self.export_type = export_type


class NoClipsToExport(ExportError):
    pass


class NoActiveArrangement(ExportError):
    def __init__(self, message: str = "No active arrangement") -> None:
        super().__init__(message)


class NoNotesToExport(ExportError):
    pass


class AssetCreationFailed(ExportError):
    pass


class WorkspaceRestoreFailed(ExportError):
    pass


class RenderFailed(ExportError):
    pass
