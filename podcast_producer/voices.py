"""Voice catalogs per TTS provider and per-speaker voice resolution."""

import logging

from podcast_producer.models import Job, ScriptLine

logger = logging.getLogger(__name__)

# Hardcoded catalogs (avoids a network call at startup). Ids not listed are
# still accepted; providers own the authoritative voice list.
VOICE_CATALOG = {
    "elevenlabs": [
        ("pFZP5JQG7iQjIQuC4Bku", "Lily, warm, professional female"),
        ("jBpfuIE2acCO8z3wKNLl", "Gigi, energetic, youthful female"),
        ("EXAVITQu4vr4xnSDxMaL", "Sarah, soft, friendly female"),
        ("onwK4e9ZLuTAKqWW03F9", "Daniel, authoritative British male"),
        ("TX3LPaxmHKxFdv7VOQHJ", "Liam, natural, conversational male"),
        ("pqHfZKP75CvOlQylNhV4", "Bill, deep, trustworthy male"),
        ("XrExE9yKIg1WjnnlVkGX", "Matilda, warm, professional German female"),
        ("g5CIjZEefAph4nQFvHAz", "Ethan, natural German male"),
    ],
    "openai": [
        ("alloy", "neutral, balanced"),
        ("echo", "warm male"),
        ("fable", "expressive British"),
        ("onyx", "deep male"),
        ("nova", "bright female"),
        ("shimmer", "soft female"),
    ],
    "edge": [
        ("en-US-AriaNeural", "US female"),
        ("en-US-GuyNeural", "US male"),
        ("en-GB-SoniaNeural", "British female"),
        ("en-GB-RyanNeural", "British male"),
        ("de-DE-KatjaNeural", "German female"),
        ("de-DE-ConradNeural", "German male"),
    ],
}


def list_voices(provider: str | None = None, filter_str: str | None = None) -> list[tuple[str, str, str]]:
    """Return (provider, voice_id, description) rows, optionally filtered."""
    rows = []
    for name, voices in VOICE_CATALOG.items():
        if provider and name != provider:
            continue
        for voice_id, description in voices:
            haystack = f"{voice_id} {description}".lower()
            if filter_str and filter_str.lower() not in haystack:
                continue
            rows.append((name, voice_id, description))
    return rows


def is_known_voice(provider: str, voice_id: str) -> bool:
    return any(v == voice_id for v, _ in VOICE_CATALOG.get(provider, []))


def check_voices(provider: str, host_voice_id: str, guest_voice_id: str) -> None:
    """Log a warning for voice ids that aren't in the catalog."""
    for role, voice_id in (("host", host_voice_id), ("guest", guest_voice_id)):
        if not is_known_voice(provider, voice_id):
            logger.warning("Unlisted %s voice for %s: %s", role, provider, voice_id)


def resolve_voice(job: Job, line: ScriptLine) -> str:
    """Voice id for a line: host voice for HOST, guest voice for GUEST."""
    return job.voice_for(line.speaker)
