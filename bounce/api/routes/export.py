"""API routes for pattern, channel, stem, freeze and arrangement exports."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from bounce.api.websocket import manager as ws_manager
from bounce.config import settings as app_settings
from bounce.console.assets import LocalFileSink
from bounce.console.catalog import (
    PRESET_BUNDLES,
    QUALITY_PRESETS,
    ExportFormat,
    ExportSettings,
    ExportType,
    get_quality_preset,
)
from bounce.console.dispatcher import ProgressCallback, ProgressEvent
from bounce.console.engine import ActiveEngineHandle
from bounce.console.manager import ExportManager
from bounce.console.workspace import Workspace
from bounce.errors import ArrangementNotFound, ExportError, PatternNotFound, UnsupportedExportType
from bounce.hands.engine import OfflineEngine

logger = structlog.get_logger()

router = APIRouter(prefix="/export", tags=["export"])


# ── Dependencies ─────────────────────────────────────────

_export_manager: ExportManager | None = None


def get_export_manager() -> ExportManager:
    """Process-wide manager over the live workspace and an offline engine."""
    global _export_manager
    if _export_manager is None:
        workspace = Workspace()
        _export_manager = ExportManager(
            workspace=workspace,
            handle=ActiveEngineHandle(OfflineEngine()),
            sink=LocalFileSink(app_settings.export_dir),
            engine_factory=OfflineEngine,
        )
    return _export_manager


# ── Models ───────────────────────────────────────────────


class ExportSettingsModel(BaseModel):
    """Overrides applied on top of the endpoint's preset; unset fields keep it."""

    format: ExportFormat | None = None
    quality: str | None = None
    export_type: ExportType | None = None
    normalize: bool | None = None
    fade_in: bool | None = None
    fade_in_duration: float | None = Field(default=None, ge=0)
    fade_out: bool | None = None
    fade_out_duration: float | None = Field(default=None, ge=0)
    include_effects: bool | None = None
    file_name_template: str | None = None
    download: bool | None = None
    add_to_project: bool | None = None
    add_to_arrangement: bool | None = None
    start_time: float | None = Field(default=None, ge=0)
    end_time: float | None = Field(default=None, ge=0)

    def apply(self, base: ExportSettings) -> ExportSettings:
        changes: dict[str, Any] = self.model_dump(exclude_none=True)
        if "quality" in changes:
            try:
                changes["quality"] = get_quality_preset(changes["quality"])
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        return base.with_overrides(**changes)


class ExportRequest(BaseModel):
    """Common body: optional settings, optional project to export in isolation."""

    settings: ExportSettingsModel = Field(default_factory=ExportSettingsModel)
    project: dict[str, Any] | None = None
    progress_channel: str | None = None


class FreezeRequest(ExportRequest):
    replace_original: bool = True
    create_asset: bool = True
    export_quality: str = "HIGH"


class ChannelsRequest(ExportRequest):
    channel_ids: list[str] = Field(min_length=1)


class ArrangementRequest(ExportRequest):
    arrangement_id: str | None = None


class BatchRequest(ExportRequest):
    pattern_ids: list[str] = Field(min_length=1)


# ── Helpers ──────────────────────────────────────────────


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (PatternNotFound, ArrangementNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (UnsupportedExportType, ValueError)):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))


def _summarize(result: Any) -> Any:
    if isinstance(result, list):
        return [_summarize(r) for r in result]
    if hasattr(result, "summary"):
        return result.summary()
    return result


async def _execute(
    manager: ExportManager,
    request: ExportRequest,
    operation: Callable[[ExportManager, ProgressCallback | None], Awaitable[Any]],
) -> Any:
    """Run an export (isolated when a project is supplied) and map failures to HTTP."""
    channel = request.progress_channel
    pending: list[asyncio.Task[None]] = []

    def _forward(event: ProgressEvent) -> None:
        if channel:
            pending.append(asyncio.create_task(ws_manager.send_progress(channel, event.percent, event.message)))

    progress = _forward if channel else None
    try:
        if request.project is not None:
            result = await manager.export_project(request.project, lambda m: operation(m, progress))
        else:
            result = await operation(manager, progress)
    except (ExportError, ValueError) as exc:
        if pending:
            await asyncio.gather(*pending)
        if channel:
            await ws_manager.send_error(channel, str(exc))
        raise _http_error(exc) from exc

    if pending:
        await asyncio.gather(*pending)
    summary = _summarize(result)
    if channel:
        await ws_manager.send_complete(channel, {"result": summary})
    return summary


# ── Endpoints ────────────────────────────────────────────


@router.get("/presets")
async def list_presets() -> dict[str, object]:
    """Quality presets, formats, export types and preset bundles."""
    return {
        "quality": {
            name: {"sample_rate": p.sample_rate, "bit_depth": p.bit_depth, "quality": p.quality}
            for name, p in QUALITY_PRESETS.items()
        },
        "formats": {f.value: {"mime_type": f.mime_type, "extension": f.extension} for f in ExportFormat},
        "export_types": [t.value for t in ExportType],
        "bundles": {
            name: {
                "export_type": b.export_type.value,
                "quality": b.quality.name,
                "normalize": b.normalize,
                "fade_out": b.fade_out,
            }
            for name, b in PRESET_BUNDLES.items()
        },
    }


@router.get("/status")
async def export_status(manager: ExportManager = Depends(get_export_manager)) -> dict[str, Any]:
    return manager.get_export_progress()


@router.put("/project")
async def load_project(
    project: dict[str, Any],
    manager: ExportManager = Depends(get_export_manager),
) -> dict[str, Any]:
    """Replace the live workspace with ``project``."""
    try:
        manager.workspace.load(project)
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid project: {exc}") from exc
    return {
        "instruments": len(manager.workspace.instruments),
        "patterns": len(manager.workspace.patterns),
        "arrangements": len(manager.workspace.arrangements),
        "mixer_tracks": len(manager.workspace.mixer_tracks),
    }


@router.post("/pattern/{pattern_id}")
async def export_pattern(
    pattern_id: str,
    request: ExportRequest | None = None,
    manager: ExportManager = Depends(get_export_manager),
) -> dict[str, Any]:
    req = request or ExportRequest()
    cfg = req.settings.apply(ExportSettings())
    files = await _execute(manager, req, lambda m, p: m.export_pattern(pattern_id, cfg, p))
    return {"pattern_id": pattern_id, "export_type": cfg.export_type.value, "files": files}


@router.post("/freeze/{pattern_id}")
async def freeze_pattern(
    pattern_id: str,
    request: FreezeRequest | None = None,
    manager: ExportManager = Depends(get_export_manager),
) -> dict[str, Any]:
    """Freeze a pattern into an audio asset and arrangement clip."""
    req = request or FreezeRequest()
    try:
        quality = get_quality_preset(req.export_quality)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    # explicit settings.quality still wins over export_quality
    cfg = req.settings.apply(PRESET_BUNDLES["FREEZE"].with_overrides(quality=quality))
    return await _execute(
        manager,
        req,
        lambda m, p: m.pattern_to_audio(
            pattern_id,
            replace_original=req.replace_original,
            create_asset=req.create_asset,
            settings=cfg,
            on_progress=p,
        ),
    )


@router.post("/mixdown/{pattern_id}")
async def quick_mixdown(
    pattern_id: str,
    request: ExportRequest | None = None,
    manager: ExportManager = Depends(get_export_manager),
) -> dict[str, Any]:
    req = request or ExportRequest()
    cfg = req.settings.apply(PRESET_BUNDLES["MIXDOWN"])
    files = await _execute(manager, req, lambda m, p: m.export_pattern(pattern_id, cfg, p))
    return {"pattern_id": pattern_id, "files": files}


@router.post("/stems/{pattern_id}")
async def export_stems(
    pattern_id: str,
    request: ExportRequest | None = None,
    manager: ExportManager = Depends(get_export_manager),
) -> dict[str, Any]:
    req = request or ExportRequest()
    cfg = req.settings.apply(PRESET_BUNDLES["STEMS"])
    files = await _execute(manager, req, lambda m, p: m.export_pattern(pattern_id, cfg, p))
    return {"pattern_id": pattern_id, "stems": files}


@router.post("/channels")
async def export_channels(
    request: ChannelsRequest,
    manager: ExportManager = Depends(get_export_manager),
) -> dict[str, Any]:
    cfg = request.settings.apply(ExportSettings())
    results = await _execute(
        manager, request, lambda m, p: m.export_channels(request.channel_ids, cfg, p)
    )
    return {"results": results}


@router.post("/arrangement")
async def export_arrangement(
    request: ArrangementRequest | None = None,
    manager: ExportManager = Depends(get_export_manager),
) -> dict[str, Any]:
    req = request or ArrangementRequest()
    cfg = req.settings.apply(ExportSettings(file_name_template="{arrangementName}_{timestamp}"))
    result = await _execute(
        manager, req, lambda m, p: m.export_arrangement(req.arrangement_id, cfg, p)
    )
    return {"file": result}


@router.post("/batch/export")
async def batch_export(
    request: BatchRequest,
    manager: ExportManager = Depends(get_export_manager),
) -> dict[str, Any]:
    cfg = request.settings.apply(ExportSettings())
    results = await _execute(
        manager, request, lambda m, _p: m.batch_export_patterns(request.pattern_ids, cfg)
    )
    return {"results": results, "succeeded": sum(1 for r in results if r["success"])}


@router.post("/batch/freeze")
async def batch_freeze(
    request: BatchRequest,
    manager: ExportManager = Depends(get_export_manager),
) -> dict[str, Any]:
    cfg = request.settings.apply(PRESET_BUNDLES["FREEZE"])
    results = await _execute(
        manager, request, lambda m, _p: m.batch_freeze_patterns(request.pattern_ids, cfg)
    )
    return {"results": results, "succeeded": sum(1 for r in results if r["success"])}
