"""Shared fixtures: a recording fake engine and a small populated workspace."""

from __future__ import annotations

import numpy as np
import pytest

from bounce.console.channels import MixerChannel, Send
from bounce.console.engine import ActiveEngineHandle, LiveInstrumentState, RenderOptions, RenderResult
from bounce.console.workspace import Workspace
from bounce.grid.arrangement import Arrangement, Clip
from bounce.grid.instruments import Instrument
from bounce.grid.pattern import Note, Pattern
from bounce.hands.processor import AudioBuffer


class FakeEngine:
    """Engine double that records renders and returns a fixed-length buffer."""

    def __init__(
        self,
        frames: int = 1000,
        amplitude: float = 0.5,
        fail_for: set[str] | None = None,
        fail_dispose: bool = False,
    ) -> None:
        self.frames = frames
        self.amplitude = amplitude
        self.fail_for = fail_for or set()
        self.fail_dispose = fail_dispose
        self.live: dict[str, LiveInstrumentState] = {}
        self.snapshots: list = []
        self.sequences: list = []
        self.options: list[RenderOptions] = []
        self.initialized = False
        self.resumed = False
        self.disposed = False

    async def initialize(self) -> None:
        self.initialized = True

    async def resume(self) -> None:
        self.resumed = True

    def dispose(self) -> None:
        self.disposed = True
        if self.fail_dispose:
            raise RuntimeError("dispose exploded")

    @property
    def master_volume(self) -> float:
        return 1.0

    def live_instrument_state(self, instrument_id: str) -> LiveInstrumentState | None:
        return self.live.get(instrument_id)

    def _buffer(self, sample_rate: int) -> AudioBuffer:
        return AudioBuffer(np.full((2, self.frames), self.amplitude), sample_rate)

    async def render_pattern(self, snapshot, options: RenderOptions) -> RenderResult:
        failing = self.fail_for & set(snapshot.instruments)
        if failing:
            raise RuntimeError(f"render failed for {sorted(failing)}")
        self.snapshots.append(snapshot)
        self.options.append(options)
        return RenderResult(audio_buffer=self._buffer(options.sample_rate))

    async def render_arrangement(self, sequence, options: RenderOptions) -> RenderResult:
        self.sequences.append(sequence)
        self.options.append(options)
        return RenderResult(audio_buffer=self._buffer(options.sample_rate))


def build_workspace() -> Workspace:
    """Three instruments over two tracks and a reverb bus, one pattern, one arrangement."""
    ws = Workspace(bpm=120.0)
    ws.add_instrument(Instrument(id="kick", name="Kick 1", mixer_track_id="drums"))
    ws.add_instrument(Instrument(id="bass", name="Sub Bass", mixer_track_id="bass-track"))
    ws.add_instrument(Instrument(id="lead", name="Lead Synth", mixer_track_id="master"))

    ws.add_channel(MixerChannel(id="drums", name="Drums", sends=[Send(bus_id="verb", level=0.3)]))
    ws.add_channel(MixerChannel(id="bass-track", name="Bass"))
    ws.add_channel(MixerChannel(id="verb", name="Reverb Bus", type="bus"))
    ws.add_channel(MixerChannel(id="master", name="Master", type="master"))

    ws.add_pattern(
        Pattern(
            id="p1",
            name="Intro",
            data={
                "kick": [Note(pitch=36, time=0), Note(pitch=36, time=8)],
                "bass": [Note(pitch=33, time=0, length=4)],
                "lead": [Note(pitch=72, time=4, length=2)],
            },
        )
    )

    arrangement = Arrangement(id="a1", name="Song")
    track = arrangement.add_track("Main")
    arrangement.add_clip(
        Clip(id="c1", type="pattern", track_id=track.id, start_time=8.0, duration=4.0, pattern_id="p1")
    )
    ws.add_arrangement(arrangement)
    return ws


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def handle(engine: FakeEngine) -> ActiveEngineHandle:
    return ActiveEngineHandle(engine)


@pytest.fixture
def workspace() -> Workspace:
    return build_workspace()
