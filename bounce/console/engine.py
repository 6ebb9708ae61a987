"""BOUNCE Engine Contracts — what the export pipeline needs from an audio engine.

The engine is a single, exclusively owned resource. It is reached only through
an ``ActiveEngineHandle`` that the snapshot builder, dispatcher and export
session share; the session swaps the handle's engine for the duration of an
export and restores it afterwards.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

from bounce.errors import EngineUnavailable
from bounce.hands.processor import AudioBuffer

if TYPE_CHECKING:
    from bounce.console.snapshot import PatternSnapshot

logger = structlog.get_logger()


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class LiveInstrumentState:
    """Parameter values read from a running instrument. ``None`` = not reported."""

    preset_name: str | None = None
    settings: dict[str, Any] | None = None
    volume: float | None = None
    sample_start: float | None = None
    sample_end: float | None = None
    reverse: bool | None = None
    pitch: float | None = None
    muted: bool | None = None


@dataclass(frozen=True)
class RenderOptions:
    sample_rate: int = 44100
    bit_depth: int = 16
    include_effects: bool = True
    bpm: float = 140.0


@dataclass
class RenderResult:
    audio_buffer: AudioBuffer
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SequenceEntry:
    """One pattern placed on the arrangement timeline (beats)."""

    snapshot: PatternSnapshot
    start_time: float
    duration: float


# ── Protocols ────────────────────────────────────────────


@runtime_checkable
class AudioEngine(Protocol):
    """Live engine lifecycle plus the offline render entry points."""

    async def initialize(self) -> None: ...

    async def resume(self) -> None: ...

    def dispose(self) -> None: ...

    @property
    def master_volume(self) -> float: ...

    def live_instrument_state(self, instrument_id: str) -> LiveInstrumentState | None: ...

    async def render_pattern(
        self, snapshot: PatternSnapshot, options: RenderOptions
    ) -> RenderResult: ...

    async def render_arrangement(
        self, sequence: list[SequenceEntry], options: RenderOptions
    ) -> RenderResult: ...


EngineFactory = Callable[[], AudioEngine]


# ── Ownership ────────────────────────────────────────────


class ActiveEngineHandle:
    """Holds the engine currently in charge of audio."""

    def __init__(self, engine: AudioEngine | None = None) -> None:
        self._engine = engine

    @property
    def current(self) -> AudioEngine | None:
        return self._engine

    def require(self) -> AudioEngine:
        if self._engine is None:
            raise EngineUnavailable()
        return self._engine

    def swap(self, engine: AudioEngine | None) -> AudioEngine | None:
        """Install ``engine`` and return the one it replaced."""
        previous, self._engine = self._engine, engine
        logger.debug(
            "engine_swapped",
            previous=type(previous).__name__ if previous else None,
            current=type(engine).__name__ if engine else None,
        )
        return previous
