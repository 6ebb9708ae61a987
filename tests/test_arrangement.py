"""Arrangement, pattern and workspace model tests."""

import pytest

from conftest import build_workspace
from bounce.console.workspace import Workspace, is_trivial
from bounce.grid.arrangement import Arrangement, Clip
from bounce.grid.pattern import (
    Note,
    Pattern,
    beats_to_seconds,
    pattern_bar_length,
    seconds_to_beats,
    slice_pattern_data,
    steps_to_beats,
)


# ── Timing ───────────────────────────────────────────────


def test_unit_conversions():
    assert steps_to_beats(16) == 4.0
    assert beats_to_seconds(4, 120) == 2.0
    assert seconds_to_beats(2.0, 120) == 4.0


def test_note_validation():
    with pytest.raises(ValueError):
        Note(pitch=128)
    with pytest.raises(ValueError):
        Note(length=0)


def test_declared_length_counts():
    assert pattern_bar_length(Pattern(id="p", length_steps=32)) == 2


def test_slice_half_open():
    data = {"i": [Note(time=2), Note(time=4), Note(time=8)]}
    sliced = slice_pattern_data(data, 4, 8)
    assert [n.time for n in sliced["i"]] == [0]


# ── Audio instances ──────────────────────────────────────


def test_clips_share_instance_per_asset():
    arrangement = Arrangement(id="a")
    track = arrangement.add_track()
    first = arrangement.add_audio_clip("asset-1", track.id, 0, 4, name="Loop")
    second = arrangement.add_audio_clip("asset-1", track.id, 4, 4, name="Loop")
    other = arrangement.add_audio_clip("asset-2", track.id, 8, 4)

    assert first.instance_id == second.instance_id
    assert other.instance_id != first.instance_id
    assert len(arrangement.instances) == 2
    # per-clip fields stay independent
    assert first.start_time != second.start_time


def test_orphaned_instances_reported_not_deleted():
    arrangement = Arrangement(id="a")
    track = arrangement.add_track()
    clip = arrangement.add_audio_clip("asset-1", track.id, 0, 4)
    arrangement.remove_clip(clip.id)

    orphans = arrangement.orphaned_instances()
    assert [o.asset_id for o in orphans] == ["asset-1"]
    assert len(arrangement.instances) == 1


def test_last_clip_and_pattern_clips():
    arrangement = Arrangement(id="a")
    arrangement.add_clip(Clip(id="x", type="pattern", track_id="t", start_time=0, duration=8, pattern_id="p"))
    arrangement.add_clip(Clip(id="y", type="pattern", track_id="t", start_time=4, duration=2, pattern_id="q"))
    assert arrangement.last_clip().id == "x"
    assert [c.id for c in arrangement.pattern_clips("q")] == ["y"]


def test_arrangement_round_trip():
    arrangement = Arrangement(id="a", name="Song", tempo=128)
    track = arrangement.add_track("Main", channel_id="drums")
    arrangement.add_audio_clip("asset-1", track.id, 0, 4, metadata={"k": 1})
    restored = Arrangement.from_dict(arrangement.to_dict())
    assert restored.to_dict() == arrangement.to_dict()


# ── Workspace ────────────────────────────────────────────


def test_workspace_serialize_load_round_trip():
    ws = build_workspace()
    data = ws.serialize()
    other = Workspace()
    other.load(data)
    assert other.serialize() == data
    assert other.active_pattern.name == "Intro"
    assert other.active_arrangement.id == "a1"


def test_serialize_is_a_copy():
    ws = build_workspace()
    data = ws.serialize()
    ws.patterns["p1"].name = "Changed"
    assert data["patterns"][0]["name"] == "Intro"


def test_is_trivial():
    assert is_trivial(None)
    assert is_trivial(Workspace().serialize())
    assert not is_trivial(build_workspace().serialize())

    only_tracks = Workspace()
    arrangement = Arrangement(id="a")
    arrangement.add_track()
    only_tracks.add_arrangement(arrangement)
    assert not is_trivial(only_tracks.serialize())
    assert is_trivial({"arrangements": [{"id": "a", "tracks": []}]})
