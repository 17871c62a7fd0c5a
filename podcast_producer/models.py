"""Data models for podcast production."""

from dataclasses import dataclass, field
from enum import Enum
from typing import NewType

from podcast_producer.constants import GUEST, HOST

# Cheap estimate from encoded byte length vs. ground truth from decoded samples
EstimatedDuration = NewType("EstimatedDuration", float)
DecodedDuration = NewType("DecodedDuration", float)


class Speaker(Enum):
    HOST = HOST
    GUEST = GUEST


class JobStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(frozen=True)
class ScriptLine:
    speaker: Speaker
    text: str                 # dialogue text without the leading emotion tag
    emotion: str | None = None

    @property
    def tagged_text(self) -> str:
        """Text with the emotion tag inline, for providers that read tags."""
        if self.emotion:
            return f"[{self.emotion}] {self.text}"
        return self.text


@dataclass
class Segment:
    """Synthesized audio for one line, owned by the assembler during one call."""
    audio: bytes
    speaker: Speaker
    text: str
    audio_format: str = "mp3"


@dataclass
class SegmentMeta:
    index: int
    speaker: Speaker
    text: str
    duration_estimate: EstimatedDuration
    start_time: float | None = None    # assigned by the assembler's timing pass

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "speaker": self.speaker.value,
            "text": self.text,
            "startTime": self.start_time,
            "durationEstimate": self.duration_estimate,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SegmentMeta":
        return cls(
            index=data["index"],
            speaker=Speaker(data["speaker"]),
            text=data["text"],
            duration_estimate=EstimatedDuration(data["durationEstimate"]),
            start_time=data.get("startTime"),
        )


@dataclass
class Job:
    id: str
    script: str
    host_voice_id: str
    guest_voice_id: str
    provider: str
    model: str | None = None
    title: str | None = None
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    current_line: int = 0
    total_lines: int = 0
    segment_urls: list[str] = field(default_factory=list)
    segment_metadata: list[SegmentMeta] = field(default_factory=list)
    audio_url: str | None = None
    duration_seconds: float | None = None
    error_message: str | None = None
    attempts: int = 0
    post_id: str | None = None
    source_locale: str | None = None
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None

    def voice_for(self, speaker: Speaker) -> str:
        return self.host_voice_id if speaker is Speaker.HOST else self.guest_voice_id


@dataclass
class PersonalityState:
    locale: str
    traits: dict[str, float]
    episode_count: int = 0
    relationship_phase: str = "strangers"
    paused: bool = False
    inside_joke_count: int = 0
    host_name: str | None = None
    memorable_moments: list[dict] = field(default_factory=list)
    last_episode_at: str | None = None
    updated_at: str | None = None
