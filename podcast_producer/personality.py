"""Per-locale HOST/GUEST personality that evolves a little after every episode.

Each trait takes a random-walk step toward the target for the current
relationship phase. Phases advance as ``mutual_comfort`` crosses the next
threshold. Memorable moments come from the ``---MOMENTS---`` section the
script writer appends after the dialogue.
"""

import logging
import random
import re
from dataclasses import replace
from datetime import datetime, timezone

from podcast_producer.constants import (
    DEFAULT_PERSONALITY_LOCALE,
    MAX_MOMENTS_PER_EPISODE,
    MAX_REMEMBERED_MOMENTS,
    MOMENT_MAX_CHARS,
    MOMENT_TYPES,
    MOMENTS_MARKER,
    PERSONALITY_DRIFT_RATE,
    PERSONALITY_LOCALES,
    PERSONALITY_NOISE,
)
from podcast_producer.models import PersonalityState

logger = logging.getLogger(__name__)

PHASE_ORDER = ("strangers", "acquaintances", "colleagues", "friends", "close_friends")

# mutual_comfort needed to enter each phase
PHASE_THRESHOLDS = {
    "strangers": 0.0,
    "acquaintances": 0.3,
    "colleagues": 0.5,
    "friends": 0.7,
    "close_friends": 0.85,
}

TRAITS = (
    "host_warmth", "host_humor", "host_formality", "host_curiosity", "host_self_awareness",
    "guest_confidence", "guest_playfulness", "guest_directness", "guest_empathy",
    "guest_self_awareness",
    "mutual_comfort", "flirtation_tendency", "self_irony",
)

# Frozen while the relationship is paused
RELATIONSHIP_TRAITS = ("mutual_comfort", "flirtation_tendency")

DEFAULT_TRAITS = dict(zip(TRAITS, (
    0.5, 0.4, 0.6, 0.7, 0.2,
    0.6, 0.3, 0.7, 0.4, 0.2,
    0.2, 0.0, 0.3,
)))

PHASE_TARGETS = {
    phase: dict(zip(TRAITS, values))
    for phase, values in {
        "strangers": (0.4, 0.3, 0.7, 0.6, 0.4, 0.6, 0.2, 0.7, 0.3, 0.4, 0.3, 0.0, 0.5),
        "acquaintances": (0.55, 0.45, 0.55, 0.7, 0.5, 0.65, 0.4, 0.65, 0.45, 0.5, 0.5, 0.05, 0.55),
        "colleagues": (0.65, 0.55, 0.45, 0.75, 0.55, 0.7, 0.5, 0.6, 0.55, 0.55, 0.7, 0.15, 0.6),
        "friends": (0.75, 0.65, 0.35, 0.8, 0.65, 0.75, 0.6, 0.55, 0.65, 0.65, 0.85, 0.3, 0.7),
        "close_friends": (0.85, 0.7, 0.25, 0.85, 0.8, 0.8, 0.7, 0.5, 0.75, 0.8, 0.95, 0.45, 0.8),
    }.items()
}

_MOMENT_RE = re.compile(r'^\[(\w+)\]\s*"(.+)"$')


def personality_locale(source_locale: str | None) -> str:
    """Map a content locale to the locale whose personality it advances."""
    return PERSONALITY_LOCALES.get(source_locale or "", DEFAULT_PERSONALITY_LOCALE)


def default_state(locale: str) -> PersonalityState:
    return PersonalityState(locale=locale, traits=dict(DEFAULT_TRAITS))


def evolve_personality(state: PersonalityState, rng: random.Random | None = None) -> PersonalityState:
    """One episode's random-walk step. Returns a new state."""
    rng = rng or random.Random()
    targets = PHASE_TARGETS[state.relationship_phase]
    traits = dict(state.traits)

    for trait in TRAITS:
        if state.paused and trait in RELATIONSHIP_TRAITS:
            continue
        current = traits.get(trait, DEFAULT_TRAITS[trait])
        drift = (targets[trait] - current) * PERSONALITY_DRIFT_RATE
        noise = rng.uniform(-PERSONALITY_NOISE, PERSONALITY_NOISE)
        traits[trait] = min(1.0, max(0.0, current + drift + noise))

    phase = state.relationship_phase
    if not state.paused:
        index = PHASE_ORDER.index(phase)
        if index < len(PHASE_ORDER) - 1:
            next_phase = PHASE_ORDER[index + 1]
            if traits["mutual_comfort"] >= PHASE_THRESHOLDS[next_phase]:
                logger.info(
                    "Personality %s: phase %s -> %s (episode %d)",
                    state.locale, phase, next_phase, state.episode_count + 1,
                )
                phase = next_phase

    return replace(
        state,
        traits=traits,
        relationship_phase=phase,
        episode_count=state.episode_count + 1,
        memorable_moments=list(state.memorable_moments),
    )


def extract_memorable_moments(script: str, episode: int) -> tuple[list[dict], str | None]:
    """Parse ``[type] "quote"`` lines after the moments marker.

    At most three moments, one per type, quotes cut to 80 characters.
    A ``[host_name] "Name"`` line is returned separately.
    """
    marker = script.find(MOMENTS_MARKER)
    if marker == -1:
        return [], None
    section = script[marker + len(MOMENTS_MARKER):].strip()
    if not section or section.startswith("(none)"):
        return [], None

    moments = []
    seen_types = set()
    host_name = None
    for line in section.splitlines():
        match = _MOMENT_RE.match(line.strip())
        if not match:
            continue
        kind, text = match.groups()
        if kind == "host_name":
            host_name = text.strip()
            continue
        if len(moments) >= MAX_MOMENTS_PER_EPISODE or kind not in MOMENT_TYPES or kind in seen_types:
            continue
        seen_types.add(kind)
        if len(text) > MOMENT_MAX_CHARS:
            text = text[:MOMENT_MAX_CHARS - 3] + "..."
        moments.append({"episode": episode, "text": text, "type": kind})
    return moments, host_name


def advance_state(state: PersonalityState, script: str, rng: random.Random | None = None) -> PersonalityState:
    """Evolve traits, fold in the episode's moments and stamp the episode time."""
    evolved = evolve_personality(state, rng)
    moments, host_name = extract_memorable_moments(script, state.episode_count + 1)

    if host_name and not evolved.host_name:
        evolved.host_name = host_name
        logger.info("Personality %s: host name set to %r", state.locale, host_name)

    evolved.memorable_moments = (evolved.memorable_moments + moments)[-MAX_REMEMBERED_MOMENTS:]
    evolved.inside_joke_count += len(moments)
    evolved.last_episode_at = datetime.now(timezone.utc).isoformat()
    return evolved


def advance_personality(store, locale: str, script: str, rng: random.Random | None = None) -> PersonalityState:
    """Read, advance and write one locale's state in a single store transaction."""
    evolved = store.update(locale, lambda state: advance_state(state, script, rng))
    logger.info(
        "Personality %s: episode #%d saved, phase %s, comfort %.2f",
        locale, evolved.episode_count, evolved.relationship_phase, evolved.traits["mutual_comfort"],
    )
    return evolved
