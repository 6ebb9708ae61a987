"""BOUNCE Export Session — run an export against a private engine and workspace.

The session captures the live workspace and asset registry, clears them,
installs a freshly built render engine in the shared handle, loads the export
target, runs the executor, and then always tears down and restores, even when
the executor raises. The session holds the same ``ExportLock`` as the export
calls it wraps, so it never starts while another export is in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from bounce.console.assets import AssetRegistry
from bounce.console.engine import ActiveEngineHandle, AudioEngine, EngineFactory
from bounce.console.workspace import Workspace, is_trivial
from bounce.errors import WorkspaceRestoreFailed

logger = structlog.get_logger()

T = TypeVar("T")


# ── Export Lock ──────────────────────────────────────────


class ExportLock:
    """One mutex for every export call and session on a workspace.

    Re-entrant within the holder's context: an export started by the holder
    (including from tasks it spawns) runs without waiting on itself.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._held: ContextVar[bool] = ContextVar(f"export_lock_{id(self)}", default=False)

    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def held(self) -> bool:
        return self._held.get()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        if self._held.get():
            yield
            return
        async with self._lock:
            token = self._held.set(True)
            try:
                yield
            finally:
                self._held.reset(token)


# ── Session ──────────────────────────────────────────────


@dataclass(frozen=True)
class SessionContext:
    """What the executor gets to work with."""

    audio_engine: AudioEngine
    workspace: Workspace


Executor = Callable[[SessionContext], Awaitable[T]]


class ExportSession:
    """Scoped, exclusive ownership of the audio engine for one export."""

    def __init__(
        self,
        workspace: Workspace,
        handle: ActiveEngineHandle,
        engine_factory: EngineFactory,
        lock: ExportLock | None = None,
        registry: AssetRegistry | None = None,
    ) -> None:
        self.workspace = workspace
        self.handle = handle
        self.engine_factory = engine_factory
        self.registry = registry
        self._lock = lock or ExportLock()

    @property
    def active(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def isolated(self, project_data: dict[str, Any]) -> AsyncIterator[SessionContext]:
        """Yield a context whose workspace holds ``project_data`` on a fresh engine."""
        async with self._lock.hold():
            captured = self.workspace.serialize()
            captured_assets = self.registry.snapshot() if self.registry is not None else None
            previous_engine = self.handle.current
            engine: AudioEngine | None = None
            logger.info(
                "export_session_started",
                restore=not is_trivial(captured),
                instruments=len(captured["instruments"]),
                patterns=len(captured["patterns"]),
            )

            try:
                self.workspace.clear()
                if self.registry is not None:
                    self.registry.clear()
                engine = self.engine_factory()
                self.handle.swap(engine)
                await engine.initialize()
                await engine.resume()
                self.workspace.load(project_data)
                yield SessionContext(audio_engine=engine, workspace=self.workspace)
            finally:
                self.workspace.clear()
                if engine is not None:
                    try:
                        engine.dispose()
                    except Exception as exc:
                        logger.error("export_engine_dispose_failed", error=str(exc))
                self.handle.swap(previous_engine)
                if captured_assets is not None:
                    self.registry.restore(captured_assets)
                if not is_trivial(captured):
                    self._restore(captured)
                logger.info("export_session_finished")

    def _restore(self, captured: dict[str, Any]) -> None:
        try:
            self.workspace.load(captured)
        except (KeyError, TypeError, ValueError) as exc:
            failure = WorkspaceRestoreFailed(f"Previous workspace could not be restored: {exc}")
            logger.error("workspace_restore_failed", error=str(failure))

    async def run(self, project_data: dict[str, Any], executor: Executor[T]) -> T:
        """Run ``executor`` inside an isolated session and return its result."""
        async with self.isolated(project_data) as context:
            return await executor(context)
