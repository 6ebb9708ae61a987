"""Stem classifier tests."""

import pytest

from bounce.console.stems import StemClassifier, StemGroup, StemRule


@pytest.mark.parametrize(
    "name,group",
    [
        ("Kick 1", StemGroup.DRUMS),
        ("HiHat Open", StemGroup.DRUMS),
        ("Sub Bass", StemGroup.BASS),
        ("808 Boom", StemGroup.BASS),
        ("Lead Synth", StemGroup.MELODY),
        ("Reverb Riser", StemGroup.FX),
        ("Piano", StemGroup.OTHER),
    ],
)
def test_classify(name, group):
    assert StemClassifier().classify(name) == group


def test_rule_order_decides_overlaps():
    """Bass is checked before melody, so "Synth Bass" lands in bass."""
    assert StemClassifier().classify("Synth Bass") == StemGroup.BASS


def test_group_drops_empty_groups():
    groups = StemClassifier().group({"k": "Kick", "s": "Snare", "p": "Piano"})
    assert groups == {StemGroup.DRUMS: ["k", "s"], StemGroup.OTHER: ["p"]}


def test_custom_rules():
    classifier = StemClassifier([StemRule(StemGroup.FX, ("piano",))])
    assert classifier.classify("Grand Piano") == StemGroup.FX
    assert classifier.classify("Kick") == StemGroup.OTHER
