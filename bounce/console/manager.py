"""BOUNCE Export Manager — public export API over the dispatcher, freeze and batch layers.

Every export call runs under one ``ExportLock``, shared with the isolated
export session: concurrent callers wait their turn instead of interleaving
renders on the shared engine or swapping it mid-render. Nested calls made by
the holder re-enter. Batch operations acquire the lock per item, not for the
whole batch.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from bounce.console.assets import AssetRegistry, FileSink
from bounce.console.batch import run_batch
from bounce.console.catalog import (
    FREEZE_PRESET,
    MIXDOWN_PRESET,
    STEMS_PRESET,
    ExportSettings,
    ExportType,
    get_quality_preset,
)
from bounce.console.dispatcher import (
    ExportDispatcher,
    ExportResult,
    ItemResult,
    ProgressCallback,
    ProgressEvent,
    report_progress,
)
from bounce.console.engine import ActiveEngineHandle, EngineFactory
from bounce.console.freeze import AssetMaterializer, TransportNotifier, cpu_savings, freeze_duration_beats
from bounce.console.session import ExportLock, ExportSession
from bounce.console.stems import StemClassifier
from bounce.console.workspace import Workspace
from bounce.errors import EngineUnavailable, PatternNotFound

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_SETTINGS = ExportSettings()


@dataclass
class PatternToAudioResult:
    export_files: list[ExportResult]
    asset_id: str | None
    clip_id: str | None
    original_pattern_id: str
    cpu_savings: int
    replaced: bool = False
    workflow: str = field(default="pattern-to-audio")

    def summary(self) -> dict[str, Any]:
        return {
            "export_files": [f.summary() for f in self.export_files],
            "asset_id": self.asset_id,
            "clip_id": self.clip_id,
            "original_pattern_id": self.original_pattern_id,
            "cpu_savings": self.cpu_savings,
            "replaced": self.replaced,
            "workflow": self.workflow,
        }


class ExportManager:
    """Entry point for pattern, channel, stem, freeze and arrangement exports."""

    def __init__(
        self,
        workspace: Workspace,
        handle: ActiveEngineHandle,
        registry: AssetRegistry | None = None,
        sink: FileSink | None = None,
        engine_factory: EngineFactory | None = None,
        transport: TransportNotifier | None = None,
        classifier: StemClassifier | None = None,
    ) -> None:
        self.workspace = workspace
        self.handle = handle
        self.registry = registry or AssetRegistry(workspace)
        self.materializer = AssetMaterializer(self.registry, transport)
        self.dispatcher = ExportDispatcher(
            workspace=workspace,
            handle=handle,
            materializer=self.materializer,
            sink=sink,
            classifier=classifier or StemClassifier(),
        )
        self._lock = ExportLock()
        self.session = (
            ExportSession(workspace, handle, engine_factory, lock=self._lock, registry=self.registry)
            if engine_factory
            else None
        )
        self._active: dict[str, str] = {}

    # ── Status ──

    def get_export_progress(self) -> dict[str, Any]:
        return {
            "is_exporting": self._lock.locked(),
            "active_exports": [{"id": k, "type": v} for k, v in self._active.items()],
        }

    async def _guarded(
        self,
        key: str,
        export_type: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        if self._lock.held:
            return await operation()
        async with self._lock.hold():
            self._active[key] = export_type
            logger.info("export_started", target=key, export_type=export_type)
            try:
                result = await operation()
            except Exception as exc:
                logger.error("export_failed", target=key, export_type=export_type, error=str(exc))
                raise
            finally:
                self._active.pop(key, None)
            logger.info("export_completed", target=key, export_type=export_type)
            return result

    # ── Pattern exports ──

    async def export_pattern(
        self,
        pattern_id: str,
        settings: ExportSettings | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[Any]:
        """Export one pattern using the strategy named by ``settings.export_type``."""
        cfg = settings or DEFAULT_SETTINGS
        return await self._guarded(
            pattern_id,
            ExportType(cfg.export_type).value,
            lambda: self.dispatcher.dispatch(pattern_id, cfg, on_progress),
        )

    async def freeze_pattern(self, pattern_id: str, **overrides: Any) -> list[ExportResult]:
        return await self.export_pattern(pattern_id, FREEZE_PRESET.with_overrides(**overrides))

    async def quick_mixdown(self, pattern_id: str, **overrides: Any) -> list[ExportResult]:
        return await self.export_pattern(pattern_id, MIXDOWN_PRESET.with_overrides(**overrides))

    async def export_stems(self, pattern_id: str, **overrides: Any) -> list[ExportResult]:
        return await self.export_pattern(pattern_id, STEMS_PRESET.with_overrides(**overrides))

    # ── Mixer channels ──

    async def export_channels(
        self,
        channel_ids: Sequence[str],
        settings: ExportSettings | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[ItemResult]:
        """Export each mixer channel of the active pattern; failures stay per item."""
        cfg = settings or DEFAULT_SETTINGS
        total = max(len(channel_ids), 1)

        async def _run() -> list[ItemResult]:
            results: list[ItemResult] = []
            for index, channel_id in enumerate(channel_ids):

                def _scaled(event: ProgressEvent, index: int = index, channel_id: str = channel_id) -> None:
                    report_progress(
                        on_progress,
                        f"{channel_id}: {event.message}",
                        int((index * 100 + event.percent) / total),
                    )

                try:
                    result = await self.dispatcher.export_mixer_channel(channel_id, cfg, _scaled)
                except Exception as exc:
                    logger.warning("channel_export_failed", channel_id=channel_id, error=str(exc))
                    results.append(ItemResult(id=channel_id, success=False, error=str(exc)))
                    continue
                results.append(ItemResult(id=channel_id, success=True, result=result))
            return results

        return await self._guarded(",".join(channel_ids), "channels", _run)

    # ── Arrangement ──

    async def export_arrangement(
        self,
        arrangement_id: str | None = None,
        settings: ExportSettings | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ExportResult:
        """Render an arrangement (the active one when ``arrangement_id`` is None)."""
        cfg = (settings or DEFAULT_SETTINGS).with_overrides(export_type=ExportType.ARRANGEMENT)
        results = await self._guarded(
            arrangement_id or "active-arrangement",
            ExportType.ARRANGEMENT.value,
            lambda: self.dispatcher.dispatch(arrangement_id, cfg, on_progress),
        )
        return results[0]

    # ── Freeze workflow ──

    async def pattern_to_audio(
        self,
        pattern_id: str,
        replace_original: bool = False,
        create_asset: bool = True,
        export_quality: str = "HIGH",
        settings: ExportSettings | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PatternToAudioResult:
        """Freeze-render a pattern, register it, and replace or append its clip.

        ``export_quality`` picks the quality of the default freeze preset;
        explicit ``settings`` keep their own quality.
        """
        base = settings or FREEZE_PRESET.with_overrides(quality=get_quality_preset(export_quality))
        cfg = base.with_overrides(export_type=ExportType.FREEZE)

        async def _run() -> PatternToAudioResult:
            pattern = self.workspace.patterns.get(pattern_id)
            if pattern is None:
                raise PatternNotFound(pattern_id)

            report_progress(on_progress, "Rendering pattern audio...", 10)
            files = await self.export_pattern(pattern_id, cfg)

            asset_id = clip_id = None
            replaced = False
            duration_beats = freeze_duration_beats(pattern)

            if create_asset and files:
                report_progress(on_progress, "Creating audio asset...", 60)
                asset_id = self.materializer.create_asset(
                    files[0].buffer,
                    name=f"Frozen {pattern.name or pattern_id}",
                    source_id=pattern_id,
                    duration_beats=duration_beats,
                    kind="frozen",
                    metadata={"original_pattern_id": pattern_id},
                )

            arrangement = self.workspace.active_arrangement
            if asset_id and arrangement is None:
                logger.warning("no_active_arrangement_for_freeze", pattern_id=pattern_id)
            elif asset_id:
                report_progress(on_progress, "Adding to arrangement...", 90)
                if replace_original:
                    placed = self.materializer.replace_pattern(arrangement, pattern, asset_id)
                    clip_id, replaced = placed.clip.id, placed.replaced
                else:
                    clip = self.materializer.append_clip(
                        arrangement,
                        asset_id,
                        f"Frozen {pattern.name or pattern_id}",
                        duration_beats,
                        metadata={"original_pattern_id": pattern_id},
                    )
                    clip_id = clip.id

            report_progress(on_progress, "Done", 100)
            return PatternToAudioResult(
                export_files=files,
                asset_id=asset_id,
                clip_id=clip_id,
                original_pattern_id=pattern_id,
                cpu_savings=cpu_savings(pattern),
                replaced=replaced,
            )

        return await self._guarded(pattern_id, "pattern-to-audio", _run)

    # ── Batches ──

    async def batch_export_patterns(
        self,
        pattern_ids: Sequence[str],
        settings: ExportSettings | None = None,
    ) -> list[ItemResult]:
        return await run_batch(
            pattern_ids,
            lambda pid: self.export_pattern(pid, settings),
            label="batch_export",
        )

    async def batch_freeze_patterns(
        self,
        pattern_ids: Sequence[str],
        settings: ExportSettings | None = None,
    ) -> list[ItemResult]:
        return await run_batch(
            pattern_ids,
            lambda pid: self.pattern_to_audio(pid, replace_original=True, create_asset=True, settings=settings),
            label="batch_freeze",
        )

    # ── Isolated sessions ──

    async def export_project(
        self,
        project_data: dict[str, Any],
        operation: Callable[[ExportManager], Awaitable[T]],
    ) -> T:
        """Run ``operation`` against ``project_data`` without touching the open project."""
        if self.session is None:
            raise EngineUnavailable("No render engine factory configured")
        session = self.session
        return await self._guarded(
            "project",
            "project",
            lambda: session.run(project_data, lambda _context: operation(self)),
        )
