"""BOUNCE Assets — in-project audio asset registry and file sinks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import structlog

from bounce.console.workspace import Workspace
from bounce.errors import AssetCreationFailed
from bounce.hands.processor import AudioBuffer

logger = structlog.get_logger()


# ── Asset Registry ───────────────────────────────────────


@dataclass
class Asset:
    """A project-owned decoded audio source."""

    id: str
    name: str
    buffer: AudioBuffer
    type: str = "audio"
    url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AssetRegistry:
    """Project asset store, optionally mirrored into the workspace's audio list."""

    def __init__(self, workspace: Workspace | None = None) -> None:
        self._assets: dict[str, Asset] = {}
        self._workspace = workspace

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._assets

    def __len__(self) -> int:
        return len(self._assets)

    def get(self, asset_id: str) -> Asset | None:
        return self._assets.get(asset_id)

    def add_asset(self, asset: Asset, mirror: bool = True) -> Asset:
        if asset.id in self._assets:
            raise AssetCreationFailed(f"Asset {asset.id} already registered")
        self._assets[asset.id] = asset
        logger.info("asset_registered", asset_id=asset.id, name=asset.name)

        if mirror and self._workspace is not None:
            self._workspace.project_audio.append(
                {
                    "id": asset.id,
                    "name": asset.name,
                    "asset_id": asset.id,
                    "duration_beats": asset.metadata.get("duration_beats"),
                    "duration_seconds": asset.buffer.duration,
                    "type": "exported",
                    "sample_rate": asset.buffer.sample_rate,
                    "channels": asset.buffer.number_of_channels,
                }
            )
        return asset

    def remove(self, asset_id: str) -> None:
        self._assets.pop(asset_id, None)

    def snapshot(self) -> dict[str, Asset]:
        return dict(self._assets)

    def restore(self, assets: dict[str, Asset]) -> None:
        """Replace the registry contents; the workspace mirror is left alone."""
        self._assets = dict(assets)

    def clear(self) -> None:
        self._assets.clear()


# ── File Sinks ───────────────────────────────────────────


class FileSink(Protocol):
    async def save(self, data: bytes, filename: str) -> str: ...


class LocalFileSink:
    """Writes encoded exports into a directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _write(self, data: bytes, filename: str) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / filename
        path.write_bytes(data)
        return path

    async def save(self, data: bytes, filename: str) -> str:
        path = await asyncio.to_thread(self._write, data, filename)
        logger.info("export_saved", path=str(path), size=len(data))
        return str(path)


class MemoryFileSink:
    """Keeps saved files in memory, keyed by filename."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}

    async def save(self, data: bytes, filename: str) -> str:
        self.files[filename] = data
        return filename
