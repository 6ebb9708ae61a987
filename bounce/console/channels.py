"""BOUNCE Mixer Channels — tracks, buses and master as declared in the mixer store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

ChannelType = Literal["track", "bus", "master"]

MASTER_CHANNEL_ID = "master"


# ── Data Types ───────────────────────────────────────────


@dataclass(frozen=True)
class Send:
    """A tap from a channel into a bus."""

    bus_id: str
    level: float = 0.5  # 0-1
    pre_fader: bool = False


@dataclass(frozen=True)
class InsertEffect:
    """One slot in a channel's insert chain."""

    id: str
    type: str
    bypass: bool = False
    settings: dict[str, Any] = field(default_factory=dict)


@dataclass
class EQSettings:
    """3-band EQ gains in dB."""

    low: float = 0.0
    mid: float = 0.0
    high: float = 0.0


@dataclass
class MixerChannel:
    """Live mixer channel state."""

    id: str
    name: str = ""
    type: ChannelType = "track"
    gain: float = 1.0  # Linear
    pan: float = 0.0  # -1 (left) to +1 (right)
    mute: bool = False
    eq: EQSettings = field(default_factory=EQSettings)
    insert_effects: list[InsertEffect] = field(default_factory=list)
    sends: list[Send] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MixerChannel:
        eq = data.get("eq") or {}
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            type=data.get("type", "track"),
            gain=float(data.get("gain", 1.0)),
            pan=float(data.get("pan", 0.0)),
            mute=bool(data.get("mute", False)),
            eq=EQSettings(**eq) if isinstance(eq, dict) else eq,
            insert_effects=[
                InsertEffect(
                    id=str(fx["id"]),
                    type=str(fx["type"]),
                    bypass=bool(fx.get("bypass", False)),
                    settings=dict(fx.get("settings") or {}),
                )
                for fx in data.get("insert_effects", [])
            ],
            sends=[
                Send(
                    bus_id=str(s["bus_id"]),
                    level=float(s.get("level", 0.5)),
                    pre_fader=bool(s.get("pre_fader", False)),
                )
                for s in data.get("sends", [])
            ],
        )


def default_master() -> MixerChannel:
    return MixerChannel(id=MASTER_CHANNEL_ID, name="Master", type="master")
