"""BOUNCE Stem Classifier — best-effort grouping of instruments by name.

Rules are keyword sets matched as case-insensitive substrings, checked in
order; the first matching rule wins and anything unmatched lands in ``OTHER``.
This is a heuristic: "Synth Bass" is bass only because the bass rule is
checked before the melody rule.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum


class StemGroup(str, Enum):
    DRUMS = "drums"
    BASS = "bass"
    MELODY = "melody"
    FX = "fx"
    OTHER = "other"


@dataclass(frozen=True)
class StemRule:
    group: StemGroup
    keywords: tuple[str, ...]

    def matches(self, name: str) -> bool:
        lowered = name.lower()
        return any(k in lowered for k in self.keywords)


DEFAULT_RULES: tuple[StemRule, ...] = (
    StemRule(StemGroup.DRUMS, ("kick", "snare", "hat", "drum")),
    StemRule(StemGroup.BASS, ("bass", "808", "sub")),
    StemRule(StemGroup.MELODY, ("lead", "melody", "synth")),
    StemRule(StemGroup.FX, ("fx", "effect", "reverb")),
)


class StemClassifier:
    """Maps instrument names to stem groups through an ordered rule list."""

    def __init__(self, rules: Iterable[StemRule] = DEFAULT_RULES) -> None:
        self.rules = tuple(rules)

    def classify(self, name: str) -> StemGroup:
        for rule in self.rules:
            if rule.matches(name):
                return rule.group
        return StemGroup.OTHER

    def group(self, names: Mapping[str, str]) -> dict[StemGroup, list[str]]:
        """Group ``{instrument_id: name}`` into non-empty stem groups, in enum order."""
        groups: dict[StemGroup, list[str]] = {g: [] for g in StemGroup}
        for inst_id, name in names.items():
            groups[self.classify(name)].append(inst_id)
        return {g: ids for g, ids in groups.items() if ids}
