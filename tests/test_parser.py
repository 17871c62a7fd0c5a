"""Tests for script parsing and validation."""

from podcast_producer.models import Speaker
from podcast_producer.parser import (
    estimate_duration,
    parse_script,
    strip_moments_section,
    validate_emotions,
)


def test_parse_two_speakers():
    lines = parse_script("HOST: [cheerfully] Hi.\nGUEST: [thoughtfully] Hello there.")
    assert len(lines) == 2
    assert lines[0].speaker is Speaker.HOST
    assert lines[0].emotion == "cheerfully"
    assert lines[0].text == "Hi."
    assert lines[1].speaker is Speaker.GUEST
    assert lines[1].text == "Hello there."


def test_parse_without_emotion():
    lines = parse_script("HOST: Plain line")
    assert lines[0].emotion is None
    assert lines[0].text == "Plain line"


def test_parse_lowercases_emotion():
    lines = parse_script("GUEST: [Excitedly] Wow")
    assert lines[0].emotion == "excitedly"


def test_parse_drops_non_matching_lines():
    raw = "Intro music\n\nHOST: One\nhost: lowercase speaker\nNARRATOR: Nope\nGUEST:Two\n"
    lines = parse_script(raw)
    assert [line.text for line in lines] == ["One", "Two"]


def test_parse_empty_and_garbage_give_no_lines():
    assert parse_script("") == []
    assert parse_script("just prose, no speakers") == []


def test_parse_ignores_moments_section():
    raw = 'HOST: Hi\nGUEST: Hey\n---MOMENTS---\n[joke] "HOST: not dialogue"\nHOST: also ignored'
    lines = parse_script(raw)
    assert len(lines) == 2


def test_strip_moments_section_without_marker():
    assert strip_moments_section("HOST: Hi") == "HOST: Hi"


def test_validate_emotions_flags_unknown_tags():
    lines = parse_script("HOST: [cheerfully] ok\nGUEST: [grumpily] hmm\nHOST: inline [yelling] tag")
    warnings = validate_emotions(lines)
    assert warnings == [
        "Line 2: Unknown emotion tag [grumpily]",
        "Line 3: Unknown emotion tag [yelling]",
    ]


def test_validate_emotions_accepts_known_vocabulary():
    lines = parse_script("HOST: [laughing] ha\nGUEST: [whispering] psst")
    assert validate_emotions(lines) == []


def test_estimate_duration_words_per_minute():
    lines = parse_script("HOST: " + " ".join(["word"] * 150))
    assert estimate_duration(lines) == 60


def test_estimate_duration_ignores_inline_tags():
    lines = parse_script("HOST: one [laughing] two three")
    # 3 words at 150 wpm
    assert estimate_duration(lines) == 1
