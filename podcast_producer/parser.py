"""Parse two-speaker dialogue scripts into typed lines."""

import re

from podcast_producer.constants import EMOTION_TAGS, MOMENTS_MARKER, WORDS_PER_MINUTE
from podcast_producer.models import ScriptLine, Speaker

# HOST: [cheerfully] Good morning!  (speaker token is case-sensitive)
_LINE_RE = re.compile(r"^(HOST|GUEST):\s*(?:\[(\w+)\]\s*)?(.+)$")

# Any [word] tag, leading or inline
_TAG_RE = re.compile(r"\[(\w+)\]")


def strip_moments_section(script: str) -> str:
    """Drop the trailing ---MOMENTS--- block so it never reaches TTS."""
    marker = script.find(MOMENTS_MARKER)
    if marker == -1:
        return script
    return script[:marker].rstrip()


def parse_script(raw: str) -> list[ScriptLine]:
    """Parse raw dialogue text into ScriptLines.

    Permissive: lines that don't match ``SPEAKER: [emotion] text`` are
    dropped. An empty result means the script is unusable; callers must
    treat it as a validation error.
    """
    lines = []
    for raw_line in strip_moments_section(raw).splitlines():
        match = _LINE_RE.match(raw_line.strip())
        if not match:
            continue
        speaker, emotion, text = match.groups()
        lines.append(ScriptLine(
            speaker=Speaker(speaker),
            text=text.strip(),
            emotion=emotion.lower() if emotion else None,
        ))
    return lines


def validate_emotions(lines: list[ScriptLine]) -> list[str]:
    """Return a warning per emotion tag outside the supported vocabulary."""
    warnings = []
    for i, line in enumerate(lines):
        tags = [line.emotion] if line.emotion else []
        tags.extend(_TAG_RE.findall(line.text))
        for tag in tags:
            if tag.lower() not in EMOTION_TAGS:
                warnings.append(f"Line {i + 1}: Unknown emotion tag [{tag}]")
    return warnings


def estimate_duration(lines: list[ScriptLine]) -> int:
    """Estimated spoken duration in seconds, for progress display only."""
    words = 0
    for line in lines:
        words += len(_TAG_RE.sub(" ", line.text).split())
    return round(words / WORDS_PER_MINUTE * 60)
