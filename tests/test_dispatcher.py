"""Render strategy dispatcher tests — one block per export type."""

import asyncio

import numpy as np
import pytest

from conftest import FakeEngine
from bounce.console.assets import AssetRegistry, MemoryFileSink
from bounce.console.catalog import FREEZE_PRESET, ExportSettings, ExportType
from bounce.console.dispatcher import ExportDispatcher
from bounce.console.engine import ActiveEngineHandle
from bounce.console.freeze import AssetMaterializer
from bounce.errors import (
    ArrangementNotFound,
    NoActiveArrangement,
    NoClipsToExport,
    NoNotesToExport,
    PatternNotFound,
    UnsupportedExportType,
)
from bounce.grid.arrangement import Arrangement, Clip


def _dispatcher(workspace, engine: FakeEngine, sink: MemoryFileSink | None = None) -> ExportDispatcher:
    return ExportDispatcher(
        workspace=workspace,
        handle=ActiveEngineHandle(engine),
        materializer=AssetMaterializer(AssetRegistry(workspace)),
        sink=sink,
    )


def _settings(export_type: ExportType, **changes) -> ExportSettings:
    return ExportSettings(export_type=export_type, **changes)


# ── Routing ──────────────────────────────────────────────


def test_unsupported_type(workspace, engine):
    dispatcher = _dispatcher(workspace, engine)
    bogus = ExportSettings().with_overrides(export_type="karaoke")
    with pytest.raises(UnsupportedExportType):
        asyncio.run(dispatcher.dispatch("p1", bogus))


def test_missing_pattern(workspace, engine):
    with pytest.raises(PatternNotFound):
        asyncio.run(_dispatcher(workspace, engine).dispatch("nope", ExportSettings()))


# ── PATTERN ──────────────────────────────────────────────


def test_pattern_export_saves_wav(workspace, engine):
    sink = MemoryFileSink()
    results = asyncio.run(
        _dispatcher(workspace, engine, sink).dispatch("p1", _settings(ExportType.PATTERN))
    )

    assert len(results) == 1
    result = results[0]
    assert result.blob[:4] == b"RIFF"
    assert result.filename.startswith("Intro_")
    assert result.filename in sink.files
    assert result.mime_type == "audio/wav"

    snapshot = engine.snapshots[0]
    assert set(snapshot.instruments) == {"kick", "bass", "lead"}
    assert "master" in snapshot.mixer_tracks
    assert engine.options[0].sample_rate == 44100
    assert engine.options[0].bpm == 120.0


def test_pattern_export_without_download(workspace, engine):
    sink = MemoryFileSink()
    results = asyncio.run(
        _dispatcher(workspace, engine, sink).dispatch(
            "p1", _settings(ExportType.PATTERN, download=False)
        )
    )
    assert results[0].path is None
    assert sink.files == {}


def test_normalize_applied(workspace, engine):
    results = asyncio.run(_dispatcher(workspace, engine).dispatch("p1", _settings(ExportType.PATTERN, fade_out=False)))
    assert np.max(np.abs(results[0].buffer.data)) == pytest.approx(1.0)


# ── FREEZE ───────────────────────────────────────────────


def test_freeze_keeps_buffer_without_file(workspace, engine):
    sink = MemoryFileSink()
    results = asyncio.run(_dispatcher(workspace, engine, sink).dispatch("p1", FREEZE_PRESET))

    assert results[0].blob is None
    assert sink.files == {}
    # no normalize, no fade: fake engine level passes through
    assert np.max(np.abs(results[0].buffer.data)) == pytest.approx(0.5)


# ── CHANNELS (per instrument) ────────────────────────────


def test_channels_failure_isolated_per_instrument(workspace):
    engine = FakeEngine(fail_for={"bass"})
    results = asyncio.run(_dispatcher(workspace, engine).dispatch("p1", _settings(ExportType.CHANNELS)))

    assert [r.id for r in results] == ["kick", "bass", "lead"]
    assert [r.success for r in results] == [True, False, True]
    assert "bass" in results[1].error
    assert results[0].result.label == "Kick 1"


def test_channels_write_one_file_per_instrument(workspace, engine):
    sink = MemoryFileSink()
    results = asyncio.run(_dispatcher(workspace, engine, sink).dispatch("p1", _settings(ExportType.CHANNELS)))

    filenames = [r.result.filename for r in results]
    assert len(set(filenames)) == 3
    assert len(sink.files) == len(results)
    assert filenames[0].startswith("Intro_Kick 1_")


def test_stems_write_one_file_per_group(workspace, engine):
    sink = MemoryFileSink()
    results = asyncio.run(_dispatcher(workspace, engine, sink).dispatch("p1", _settings(ExportType.STEMS)))
    assert len(sink.files) == len(results) == 3


def test_channels_exclude_master(workspace, engine):
    asyncio.run(_dispatcher(workspace, engine).dispatch("p1", _settings(ExportType.CHANNELS)))
    kick_snapshot = engine.snapshots[0]
    assert set(kick_snapshot.instruments) == {"kick"}
    assert "master" not in kick_snapshot.mixer_tracks


# ── STEMS ────────────────────────────────────────────────


def test_stems_grouped_by_name(workspace, engine):
    results = asyncio.run(_dispatcher(workspace, engine).dispatch("p1", _settings(ExportType.STEMS)))
    assert [r.label for r in results] == ["drums", "bass", "melody"]
    assert [set(s.instruments) for s in engine.snapshots] == [{"kick"}, {"bass"}, {"lead"}]


# ── SELECTION ────────────────────────────────────────────


def test_selection_slices_and_rebases(workspace, engine):
    settings = _settings(ExportType.SELECTION, start_time=4, end_time=8)
    results = asyncio.run(_dispatcher(workspace, engine).dispatch("p1", settings))

    snapshot = engine.snapshots[0]
    assert snapshot.length_steps == 4
    assert [n.time for n in snapshot.data["lead"]] == [0]
    assert snapshot.data["kick"] == ()
    assert results[0].label == "selection"


def test_selection_rejects_empty_range(workspace, engine):
    settings = _settings(ExportType.SELECTION, start_time=8, end_time=8)
    with pytest.raises(ValueError):
        asyncio.run(_dispatcher(workspace, engine).dispatch("p1", settings))


# ── ARRANGEMENT ──────────────────────────────────────────


def test_arrangement_sequence_and_progress(workspace, engine):
    workspace.arrangements["a1"].tempo = 90.0
    events = []
    results = asyncio.run(
        _dispatcher(workspace, engine).dispatch(None, _settings(ExportType.ARRANGEMENT), events.append)
    )

    sequence = engine.sequences[0]
    assert [(e.start_time, e.duration) for e in sequence] == [(8.0, 4.0)]
    assert engine.options[0].bpm == 90.0
    assert [e.percent for e in events] == [0, 20, 60, 80, 90, 100]
    assert results[0].source_id == "a1"


def test_arrangement_skips_audio_clips(workspace, engine):
    arrangement = workspace.arrangements["a1"]
    arrangement.add_audio_clip("asset-1", arrangement.tracks[0].id, 0.0, 4.0)
    asyncio.run(_dispatcher(workspace, engine).dispatch("a1", _settings(ExportType.ARRANGEMENT)))
    assert len(engine.sequences[0]) == 1


def test_arrangement_errors(workspace, engine):
    dispatcher = _dispatcher(workspace, engine)
    settings = _settings(ExportType.ARRANGEMENT)

    with pytest.raises(ArrangementNotFound):
        asyncio.run(dispatcher.dispatch("missing", settings))

    workspace.add_arrangement(Arrangement(id="empty"))
    with pytest.raises(NoClipsToExport):
        asyncio.run(dispatcher.dispatch("empty", settings))

    audio_only = Arrangement(id="audio")
    track = audio_only.add_track()
    audio_only.add_clip(Clip(id="x", type="audio", track_id=track.id, asset_id="a"))
    workspace.add_arrangement(audio_only)
    with pytest.raises(NoClipsToExport):
        asyncio.run(dispatcher.dispatch("audio", settings))

    workspace.active_arrangement_id = None
    with pytest.raises(NoActiveArrangement):
        asyncio.run(dispatcher.dispatch(None, settings))


def test_arrangement_add_to_project(workspace, engine):
    settings = _settings(ExportType.ARRANGEMENT, add_to_project=True)
    results = asyncio.run(_dispatcher(workspace, engine).dispatch("a1", settings))
    assert results[0].asset_id is not None
    assert workspace.project_audio[0]["asset_id"] == results[0].asset_id


# ── Mixer channels ───────────────────────────────────────


def test_mixer_channel_routes_instruments(workspace, engine):
    events = []
    result = asyncio.run(
        _dispatcher(workspace, engine).export_mixer_channel("drums", ExportSettings(), events.append)
    )
    assert set(engine.snapshots[0].instruments) == {"kick"}
    assert "master" not in engine.snapshots[0].mixer_tracks
    assert result.label == "Drums"
    assert [e.percent for e in events] == [0, 10, 20, 60, 80, 90, 100]


def test_mixer_master_takes_everything(workspace, engine):
    asyncio.run(_dispatcher(workspace, engine).export_mixer_channel("master", ExportSettings()))
    snapshot = engine.snapshots[0]
    assert set(snapshot.instruments) == {"kick", "bass", "lead"}
    assert "master" in snapshot.mixer_tracks


def test_mixer_channel_without_notes(workspace, engine):
    with pytest.raises(NoNotesToExport):
        asyncio.run(_dispatcher(workspace, engine).export_mixer_channel("verb", ExportSettings()))


def test_mixer_channel_added_to_arrangement(workspace, engine):
    settings = ExportSettings(add_to_project=True, add_to_arrangement=True)
    result = asyncio.run(_dispatcher(workspace, engine).export_mixer_channel("bass-track", settings))

    arrangement = workspace.arrangements["a1"]
    clip = next(c for c in arrangement.clips if c.id == result.clip_id)
    assert clip.type == "audio"
    assert clip.start_time == 12.0
    assert clip.asset_id == result.asset_id
    assert clip.metadata["original_channel"] == "bass-track"
