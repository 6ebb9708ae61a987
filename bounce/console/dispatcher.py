"""BOUNCE Render Strategy Dispatcher — one strategy per export type.

Each strategy resolves its target, builds snapshots, asks the active engine
to render, post-processes, encodes, and saves (or keeps the buffer for
freeze). Single exports raise; the per-instrument CHANNELS strategy isolates
failures per item.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from bounce.config import settings as app_settings
from bounce.console.assets import FileSink
from bounce.console.catalog import ExportFormat, ExportSettings, ExportType, encoding_bit_depth
from bounce.console.channels import MASTER_CHANNEL_ID
from bounce.console.engine import ActiveEngineHandle, RenderOptions, SequenceEntry
from bounce.console.filenames import generate_filename, with_item_token
from bounce.console.freeze import AssetMaterializer, buffer_duration_beats
from bounce.console.snapshot import build_snapshot
from bounce.console.stems import StemClassifier
from bounce.console.workspace import Workspace
from bounce.errors import (
    ArrangementNotFound,
    NoActiveArrangement,
    NoClipsToExport,
    NoNotesToExport,
    PatternNotFound,
    UnsupportedExportType,
)
from bounce.grid.arrangement import Arrangement
from bounce.grid.pattern import Pattern, pattern_duration_beats, pattern_length_steps, slice_pattern_data
from bounce.hands.processor import AudioBuffer, ProcessingOptions, process_audio
from bounce.hands.wav import encode_wav

logger = structlog.get_logger()


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class ProgressEvent:
    message: str
    percent: int


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class ExportResult:
    """One produced file (or retained buffer, for freeze)."""

    filename: str
    buffer: AudioBuffer
    blob: bytes | None
    mime_type: str
    source_id: str
    label: str = ""
    path: str | None = None
    asset_id: str | None = None
    clip_id: str | None = None

    @property
    def duration(self) -> float:
        return self.buffer.duration

    @property
    def sample_rate(self) -> int:
        return self.buffer.sample_rate

    def summary(self) -> dict[str, Any]:
        """JSON-friendly description without PCM or encoded bytes."""
        return {
            "filename": self.filename,
            "source_id": self.source_id,
            "label": self.label,
            "duration": round(self.duration, 4),
            "sample_rate": self.sample_rate,
            "channels": self.buffer.number_of_channels,
            "size": len(self.blob) if self.blob is not None else 0,
            "mime_type": self.mime_type,
            "path": self.path,
            "asset_id": self.asset_id,
            "clip_id": self.clip_id,
        }


@dataclass
class ItemResult:
    """Outcome of one item in a multi-item operation."""

    id: str
    success: bool
    result: Any = None
    error: str | None = None

    def summary(self) -> dict[str, Any]:
        result = self.result
        if isinstance(result, list):
            result = [r.summary() if hasattr(r, "summary") else r for r in result]
        elif hasattr(result, "summary"):
            result = result.summary()
        return {"id": self.id, "success": self.success, "result": result, "error": self.error}


Strategy = Callable[[str | None, ExportSettings, ProgressCallback | None], Awaitable[list[Any]]]


def report_progress(on_progress: ProgressCallback | None, message: str, percent: int) -> None:
    if on_progress is not None:
        on_progress(ProgressEvent(message=message, percent=percent))


# ── Dispatcher ───────────────────────────────────────────


@dataclass
class ExportDispatcher:
    """Routes an ``ExportSettings.export_type`` to its render strategy."""

    workspace: Workspace
    handle: ActiveEngineHandle
    materializer: AssetMaterializer
    sink: FileSink | None = None
    classifier: StemClassifier = field(default_factory=StemClassifier)

    def __post_init__(self) -> None:
        self._strategies: dict[ExportType, Strategy] = {
            ExportType.PATTERN: self._export_single,
            ExportType.CHANNELS: self._export_by_instrument,
            ExportType.STEMS: self._export_by_stems,
            ExportType.FREEZE: self._export_freeze,
            ExportType.ARRANGEMENT: self._export_arrangement,
            ExportType.SELECTION: self._export_selection,
        }

    async def dispatch(
        self,
        target_id: str | None,
        settings: ExportSettings,
        on_progress: ProgressCallback | None = None,
    ) -> list[Any]:
        """Run the strategy for ``settings.export_type`` against ``target_id``.

        ``target_id`` is a pattern id, or an arrangement id (None = active)
        for ARRANGEMENT exports.
        """
        try:
            strategy = self._strategies[ExportType(settings.export_type)]
        except (KeyError, ValueError):
            raise UnsupportedExportType(settings.export_type) from None
        logger.info("export_dispatched", export_type=ExportType(settings.export_type).value, target_id=target_id)
        return await strategy(target_id, settings, on_progress)

    # ── Shared steps ──

    def _pattern(self, pattern_id: str | None) -> Pattern:
        pattern = self.workspace.patterns.get(pattern_id) if pattern_id else None
        if pattern is None:
            raise PatternNotFound(str(pattern_id))
        return pattern

    def _render_options(self, settings: ExportSettings, bpm: float | None = None) -> RenderOptions:
        return RenderOptions(
            sample_rate=settings.quality.sample_rate,
            bit_depth=settings.quality.bit_depth,
            include_effects=settings.include_effects,
            bpm=bpm or self.workspace.bpm or app_settings.default_bpm,
        )

    @staticmethod
    def _post_process(buffer: AudioBuffer, settings: ExportSettings) -> AudioBuffer:
        return process_audio(
            buffer,
            ProcessingOptions(
                normalize=settings.normalize,
                fade_in=settings.fade_in,
                fade_out=settings.fade_out,
                fade_in_duration=settings.fade_in_duration,
                fade_out_duration=settings.fade_out_duration,
            ),
        )

    @staticmethod
    def _encode(buffer: AudioBuffer, settings: ExportSettings) -> bytes:
        if settings.format != ExportFormat.WAV:
            logger.warning("format_not_implemented_using_wav", format=ExportFormat(settings.format).value)
        return encode_wav(buffer, encoding_bit_depth(settings.quality))

    async def _save(self, blob: bytes, filename: str, settings: ExportSettings) -> str | None:
        if not settings.download or self.sink is None:
            return None
        return await self.sink.save(blob, filename)

    async def _render_snapshot_to_file(
        self,
        pattern: Pattern,
        settings: ExportSettings,
        *,
        label: str = "",
        instrument_ids: list[str] | None = None,
        include_master: bool = True,
        data: dict[str, Any] | None = None,
        length_steps: float | None = None,
    ) -> ExportResult:
        snapshot = build_snapshot(
            pattern,
            self.workspace,
            self.handle,
            instrument_ids=instrument_ids,
            include_master_channel=include_master,
            data=data,
            length_steps=length_steps,
        )
        engine = self.handle.require()
        rendered = await engine.render_pattern(snapshot, self._render_options(settings))
        processed = self._post_process(rendered.audio_buffer, settings)

        pattern_name = pattern.name or "pattern"
        if settings.export_type == ExportType.FREEZE:
            return ExportResult(
                filename=generate_filename(
                    "{patternName}_frozen", ExportFormat.WAV, name=pattern_name, pattern_name=pattern_name
                ),
                buffer=processed,
                blob=None,
                mime_type=ExportFormat.WAV.mime_type,
                source_id=pattern.id,
                label=label,
            )

        blob = self._encode(processed, settings)
        fmt = ExportFormat(settings.format)
        template = with_item_token(settings.file_name_template) if label else settings.file_name_template
        filename = generate_filename(
            template,
            fmt,
            name=f"{pattern_name}_{label}" if label else pattern_name,
            pattern_name=pattern_name,
            channel_name=label or None,
        )
        path = await self._save(blob, filename, settings)
        return ExportResult(
            filename=filename,
            buffer=processed,
            blob=blob,
            mime_type=fmt.mime_type,
            source_id=pattern.id,
            label=label,
            path=path,
        )

    # ── Pattern strategies ──

    async def _export_single(
        self,
        target_id: str | None,
        settings: ExportSettings,
        on_progress: ProgressCallback | None = None,
    ) -> list[ExportResult]:
        pattern = self._pattern(target_id)
        report_progress(on_progress, "Rendering pattern...", 10)
        result = await self._render_snapshot_to_file(pattern, settings)
        report_progress(on_progress, "Pattern rendered", 100)
        return [result]

    async def _export_freeze(
        self,
        target_id: str | None,
        settings: ExportSettings,
        on_progress: ProgressCallback | None = None,
    ) -> list[ExportResult]:
        frozen = settings.with_overrides(
            export_type=ExportType.FREEZE,
            include_effects=True,
            normalize=False,
            fade_out=False,
        )
        return await self._export_single(target_id, frozen, on_progress)

    async def _export_selection(
        self,
        target_id: str | None,
        settings: ExportSettings,
        on_progress: ProgressCallback | None = None,
    ) -> list[ExportResult]:
        pattern = self._pattern(target_id)
        start = float(settings.start_time or 0.0)
        end = settings.end_time
        if end is not None and end <= start:
            raise ValueError(f"selection end ({end}) must be after start ({start})")

        sliced = slice_pattern_data(pattern.data, start, end)
        length = (end if end is not None else pattern_length_steps(pattern)) - start
        report_progress(on_progress, "Rendering selection...", 10)
        result = await self._render_snapshot_to_file(
            pattern, settings, label="selection", data=sliced, length_steps=max(length, 0.0)
        )
        report_progress(on_progress, "Selection rendered", 100)
        return [result]

    async def _export_by_instrument(
        self,
        target_id: str | None,
        settings: ExportSettings,
        on_progress: ProgressCallback | None = None,
    ) -> list[ItemResult]:
        pattern = self._pattern(target_id)
        targets = [inst_id for inst_id, notes in pattern.data.items() if notes]
        results: list[ItemResult] = []

        for index, inst_id in enumerate(targets):
            instrument = self.workspace.instruments.get(inst_id)
            label = instrument.name if instrument else inst_id
            report_progress(on_progress, f"Rendering {label}...", int(index / len(targets) * 100))
            try:
                result = await self._render_snapshot_to_file(
                    pattern,
                    settings,
                    label=label,
                    instrument_ids=[inst_id],
                    include_master=False,
                )
                results.append(ItemResult(id=inst_id, success=True, result=result))
            except Exception as exc:
                logger.error("instrument_export_failed", instrument_id=inst_id, error=str(exc))
                results.append(ItemResult(id=inst_id, success=False, error=str(exc)))

        report_progress(on_progress, "Channels rendered", 100)
        return results

    async def _export_by_stems(
        self,
        target_id: str | None,
        settings: ExportSettings,
        on_progress: ProgressCallback | None = None,
    ) -> list[ExportResult]:
        pattern = self._pattern(target_id)
        names = {}
        for inst_id, notes in pattern.data.items():
            if not notes:
                continue
            instrument = self.workspace.instruments.get(inst_id)
            names[inst_id] = instrument.name if instrument else inst_id

        groups = self.classifier.group(names)
        logger.info("stems_grouped", pattern_id=pattern.id, groups={g.value: ids for g, ids in groups.items()})

        results = []
        for index, (group, inst_ids) in enumerate(groups.items()):
            report_progress(on_progress, f"Rendering {group.value} stem...", int(index / len(groups) * 100))
            results.append(
                await self._render_snapshot_to_file(
                    pattern,
                    settings,
                    label=group.value,
                    instrument_ids=inst_ids,
                    include_master=False,
                )
            )
        report_progress(on_progress, "Stems rendered", 100)
        return results

    # ── Arrangement ──

    def _arrangement(self, arrangement_id: str | None) -> Arrangement:
        if arrangement_id is None:
            arrangement = self.workspace.active_arrangement
            if arrangement is None:
                raise NoActiveArrangement()
            return arrangement
        arrangement = self.workspace.arrangements.get(arrangement_id)
        if arrangement is None:
            raise ArrangementNotFound(arrangement_id)
        return arrangement

    async def _export_arrangement(
        self,
        target_id: str | None,
        settings: ExportSettings,
        on_progress: ProgressCallback | None = None,
    ) -> list[ExportResult]:
        arrangement = self._arrangement(target_id)
        if not arrangement.clips:
            raise NoClipsToExport("Arrangement has no clips")

        report_progress(on_progress, "Preparing arrangement...", 0)
        bpm = arrangement.tempo or self.workspace.bpm or app_settings.default_bpm

        sequence: list[SequenceEntry] = []
        for clip in sorted(arrangement.clips, key=lambda c: c.start_time):
            if clip.type == "audio":
                logger.warning("audio_clip_skipped", clip_id=clip.id, arrangement_id=arrangement.id)
                continue
            pattern = self.workspace.patterns.get(clip.pattern_id or "")
            if pattern is None:
                logger.warning("clip_pattern_missing", clip_id=clip.id, pattern_id=clip.pattern_id)
                continue
            snapshot = build_snapshot(pattern, self.workspace, self.handle, include_master_channel=True)
            sequence.append(
                SequenceEntry(
                    snapshot=snapshot,
                    start_time=clip.start_time,
                    duration=clip.duration or pattern_duration_beats(pattern),
                )
            )

        if not sequence:
            raise NoClipsToExport("No pattern clips found in arrangement")

        report_progress(on_progress, "Rendering arrangement...", 20)
        engine = self.handle.require()
        rendered = await engine.render_arrangement(sequence, self._render_options(settings, bpm))

        report_progress(on_progress, "Processing audio...", 60)
        processed = self._post_process(rendered.audio_buffer, settings)

        report_progress(on_progress, "Encoding...", 80)
        blob = self._encode(processed, settings)
        fmt = ExportFormat(settings.format)
        arrangement_name = arrangement.name or "arrangement"
        filename = generate_filename(
            settings.file_name_template.replace("{patternName}", "{arrangementName}"),
            fmt,
            name=arrangement_name,
            arrangement_name=arrangement_name,
        )

        report_progress(on_progress, "Finalizing...", 90)
        path = await self._save(blob, filename, settings)

        asset_id = None
        if settings.add_to_project:
            asset_id = self.materializer.create_asset(
                processed,
                name=f"Exported {arrangement_name}",
                source_id="arrangement",
                duration_beats=buffer_duration_beats(processed, bpm),
            )

        report_progress(on_progress, "Completed", 100)
        return [
            ExportResult(
                filename=filename,
                buffer=processed,
                blob=blob,
                mime_type=fmt.mime_type,
                source_id=arrangement.id,
                label=arrangement_name,
                path=path,
                asset_id=asset_id,
            )
        ]

    # ── Mixer channels ──

    async def export_mixer_channel(
        self,
        channel_id: str,
        settings: ExportSettings,
        on_progress: ProgressCallback | None = None,
    ) -> ExportResult:
        """Render the active pattern through one mixer channel.

        ``master`` takes every instrument and its own channel processing;
        any other channel takes the instruments routed to it.
        """
        pattern = self.workspace.active_pattern
        if pattern is None:
            raise PatternNotFound(str(self.workspace.active_pattern_id))

        channel = self.workspace.mixer_tracks.get(channel_id)
        channel_name = channel.name if channel and channel.name else channel_id
        is_master = channel_id == MASTER_CHANNEL_ID

        if is_master:
            inst_ids = list(pattern.data.keys())
        else:
            inst_ids = [
                i.id
                for i in self.workspace.instruments.values()
                if i.mixer_track_id == channel_id and i.id in pattern.data
            ]
        if not any(pattern.data.get(i) for i in inst_ids):
            raise NoNotesToExport(f"No notes found for channel {channel_name}")

        report_progress(on_progress, "Preparing channel...", 0)
        report_progress(on_progress, "Building snapshot...", 10)
        snapshot = build_snapshot(
            pattern,
            self.workspace,
            self.handle,
            instrument_ids=inst_ids,
            include_master_channel=is_master,
        )

        report_progress(on_progress, "Rendering...", 20)
        engine = self.handle.require()
        rendered = await engine.render_pattern(snapshot, self._render_options(settings))

        report_progress(on_progress, "Rendered", 60)
        report_progress(on_progress, "Post-processing...", 80)
        processed = self._post_process(rendered.audio_buffer, settings)

        report_progress(on_progress, "Encoding...", 90)
        blob = self._encode(processed, settings)
        fmt = ExportFormat(settings.format)
        filename = generate_filename(
            with_item_token(settings.file_name_template),
            fmt,
            name=channel_name,
            pattern_name=pattern.name or "pattern",
            channel_name=channel_name,
        )

        asset_id = clip_id = None
        if settings.add_to_project:
            duration_beats = buffer_duration_beats(processed, self.workspace.bpm)
            asset_id = self.materializer.create_asset(
                processed,
                name=f"Exported {channel_name}",
                source_id=channel_id,
                duration_beats=duration_beats,
                metadata={"channel_id": channel_id, "channel_name": channel_name},
            )
            arrangement = self.workspace.active_arrangement
            if settings.add_to_arrangement and asset_id:
                if arrangement is None:
                    logger.warning("no_active_arrangement_clip_skipped", channel_id=channel_id)
                else:
                    clip = self.materializer.append_clip(
                        arrangement,
                        asset_id,
                        channel_name,
                        duration_beats,
                        channel_id=channel_id,
                        metadata={"exported": True, "original_channel": channel_id},
                    )
                    clip_id = clip.id

        path = await self._save(blob, filename, settings)
        report_progress(on_progress, "Completed", 100)
        return ExportResult(
            filename=filename,
            buffer=processed,
            blob=blob,
            mime_type=fmt.mime_type,
            source_id=channel_id,
            label=channel_name,
            path=path,
            asset_id=asset_id,
            clip_id=clip_id,
        )
