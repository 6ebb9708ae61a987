"""Export filename templating tests."""

from datetime import datetime, timezone

from bounce.console.catalog import ExportFormat
from bounce.console.filenames import generate_filename, with_item_token

NOW = datetime(2026, 10, 18, 9, 15, 2, tzinfo=timezone.utc)


def test_pattern_name_and_timestamp():
    name = generate_filename(
        "{patternName}_{timestamp}", ExportFormat.WAV, pattern_name="Intro", now=NOW
    )
    assert name == "Intro_2026-10-18T09-15-02.wav"


def test_format_token_and_channel():
    name = generate_filename(
        "{channelName}-{format}", ExportFormat.FLAC, channel_name="Drums", now=NOW
    )
    assert name == "Drums-FLAC.flac"


def test_item_token_inserted_before_timestamp():
    assert with_item_token("{patternName}_{timestamp}") == "{patternName}_{channelName}_{timestamp}"
    assert with_item_token("{patternName}") == "{patternName}_{channelName}"
    assert with_item_token("{channelName}-{format}") == "{channelName}-{format}"
    assert with_item_token("") == ""


def test_unresolved_token_falls_back():
    name = generate_filename("{arrangementName}", ExportFormat.WAV, name="Song", now=NOW)
    assert name == f"Song_{int(NOW.timestamp() * 1000)}.wav"


def test_empty_template_falls_back():
    name = generate_filename("", ExportFormat.WAV, name="Bass", now=NOW)
    assert name.startswith("Bass_")
    assert name.endswith(".wav")


def test_unsafe_characters_replaced():
    name = generate_filename("{patternName}", ExportFormat.WAV, pattern_name="a/b:c?", now=NOW)
    assert name == "a_b_c_.wav"


def test_existing_extension_not_doubled():
    name = generate_filename("mix.wav", ExportFormat.WAV, now=NOW)
    assert name == "mix.wav"
