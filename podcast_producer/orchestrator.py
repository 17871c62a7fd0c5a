"""Job lifecycle: create, claim, synthesize, assemble, complete or fail.

The orchestrator is the only component that changes a job's status.
Synthesis workers never touch the job row; progress goes through the
checkpoint callback handed to the batch executor.
"""

import logging
import random
import time
from dataclasses import replace
from typing import Callable

from podcast_producer.assembly import MixOptions, assemble
from podcast_producer.batch import run_batches
from podcast_producer.config import Settings
from podcast_producer.constants import (
    DEFAULT_PROVIDER,
    MAX_PROCESSING_SECONDS,
    RECENT_JOBS_LIMIT,
    SEGMENT_PREFIX,
    STALE_CLAIM_GRACE_SECONDS,
    SUPPORTED_LOCALES,
)
from podcast_producer.errors import (
    ClaimLostError,
    JobNotFoundError,
    JobTimeoutError,
    ScriptValidationError,
)
from podcast_producer.models import Job, JobStatus
from podcast_producer.parser import parse_script
from podcast_producer.personality import advance_personality, personality_locale
from podcast_producer.storage import CONTENT_TYPES, LocalObjectStorage, fetch_bytes, slugify
from podcast_producer.store import Database, JobStore, PersonalityStore, PostPodcastStore
from podcast_producer.tts import SynthesisClient, get_provider
from podcast_producer.voices import check_voices

logger = logging.getLogger(__name__)


class BestEffortTask:
    """A post-completion step whose failure is logged and never propagates."""

    def __init__(self, name: str, func: Callable[[Job], object]):
        self.name = name
        self.func = func

    def run(self, job: Job) -> bool:
        try:
            self.func(job)
        except Exception:
            logger.exception("%s failed for job %s (job stays %s)", self.name, job.id, job.status.value)
            return False
        return True


def status_view(job: Job) -> dict:
    """Read-only projection of a job for status displays."""
    view = {
        "id": job.id,
        "title": job.title,
        "status": job.status.value,
        "provider": job.provider,
        "progress": job.progress,
        "current_line": job.current_line,
        "total_lines": job.total_lines,
        "attempts": job.attempts,
        "segment_urls": list(job.segment_urls),
        "segment_metadata": [m.to_dict() for m in job.segment_metadata],
        "created_at": job.created_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
    }
    if job.status is JobStatus.COMPLETED:
        view["audio_url"] = job.audio_url
        view["duration_seconds"] = job.duration_seconds
    if job.status is JobStatus.FAILED:
        view["error_message"] = job.error_message
    return view


class JobOrchestrator:
    def __init__(
        self,
        jobs: JobStore,
        posts: PostPodcastStore,
        personalities: PersonalityStore,
        client: SynthesisClient,
        storage: LocalObjectStorage,
        mix_options: MixOptions | None = None,
        max_processing_seconds: float | None = None,
        fetch: Callable[[str], bytes] = fetch_bytes,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self.jobs = jobs
        self.posts = posts
        self.personalities = personalities
        self.client = client
        self.storage = storage
        self.mix_options = mix_options or MixOptions()
        self.max_processing_seconds = max_processing_seconds or MAX_PROCESSING_SECONDS
        self.fetch = fetch
        self.clock = clock
        self.sleep = sleep
        self.rng = rng
        self.post_success_tasks = [
            BestEffortTask("Locale linking", self._link_locales),
            BestEffortTask("Personality advancement", self._advance_personality),
        ]

    @classmethod
    def from_settings(cls, settings: Settings) -> "JobOrchestrator":
        db = Database(settings.db_path)
        return cls(
            jobs=JobStore(db),
            posts=PostPodcastStore(db),
            personalities=PersonalityStore(db),
            client=SynthesisClient(api_keys=settings.api_keys),
            storage=LocalObjectStorage(settings.storage_dir, settings.public_base_url),
            mix_options=MixOptions(
                intro_url=settings.intro_url,
                outro_url=settings.outro_url,
                intro_crossfade_seconds=settings.intro_crossfade_seconds,
                outro_crossfade_seconds=settings.outro_crossfade_seconds,
                output_format=settings.output_format,
            ),
            max_processing_seconds=settings.max_processing_seconds,
        )

    # --- CRUD surface ---

    def create_job(
        self,
        script: str,
        host_voice_id: str,
        guest_voice_id: str,
        provider: str | None = None,
        model: str | None = None,
        title: str | None = None,
        post_id: str | None = None,
        source_locale: str | None = None,
    ) -> tuple[str, int]:
        """Validate input and insert a pending job. Returns (job_id, total_lines)."""
        if not script or not script.strip():
            raise ScriptValidationError("Script is empty")
        if not host_voice_id or not guest_voice_id:
            raise ScriptValidationError("Both host and guest voice ids are required")
        spec = get_provider(provider or DEFAULT_PROVIDER)

        lines = parse_script(script)
        if not lines:
            raise ScriptValidationError(
                "No dialogue lines found (expected 'HOST: text' or 'GUEST: text')"
            )
        check_voices(spec.name, host_voice_id, guest_voice_id)

        job = self.jobs.create(
            script=script,
            host_voice_id=host_voice_id,
            guest_voice_id=guest_voice_id,
            provider=spec.name,
            total_lines=len(lines),
            model=model,
            title=title,
            post_id=post_id,
            source_locale=source_locale,
        )
        logger.info("Created job %s: %d lines via %s", job.id, len(lines), spec.name)
        return job.id, job.total_lines

    def get_job(self, job_id: str) -> Job:
        job = self.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    def get_job_status(self, job_id: str) -> dict:
        return status_view(self.get_job(job_id))

    def list_jobs(self, limit: int = RECENT_JOBS_LIMIT) -> list[Job]:
        return self.jobs.list_recent(limit)

    def requeue_job(self, job_id: str) -> str:
        """Create a fresh pending copy of a finished job; the original is untouched."""
        old = self.get_job(job_id)
        if not old.status.is_terminal:
            raise ScriptValidationError(f"Job {job_id} is {old.status.value}; only finished jobs can be requeued")
        new_id, _ = self.create_job(
            old.script, old.host_voice_id, old.guest_voice_id, old.provider,
            old.model, old.title, old.post_id, old.source_locale,
        )
        logger.info("Requeued job %s as %s", job_id, new_id)
        return new_id

    # --- Processing ---

    def process_job(self, job_id: str | None = None) -> Job | None:
        """Claim a job (by id, or the oldest pending one) and run it to a terminal state.

        Returns the final job, or None when no id was given and nothing is pending.
        If a later attempt reclaims the job mid-run, this invocation stops
        writing it and returns the row as the new owner left it.
        """
        job = self.jobs.claim(job_id, stale_after=self.max_processing_seconds + STALE_CLAIM_GRACE_SECONDS)
        if job is None:
            if job_id is None:
                logger.info("No pending jobs")
                return None
            existing = self.get_job(job_id)
            raise JobNotFoundError(f"Job {job_id} is {existing.status.value} and cannot be claimed")

        logger.info("Claimed job %s (attempt %d, %d lines)", job.id, job.attempts, job.total_lines)
        deadline = self.clock() + self.max_processing_seconds
        try:
            job = self._run(job, deadline)
        except ClaimLostError:
            logger.warning("Job %s attempt %d lost its claim; leaving the row alone", job.id, job.attempts)
            return self.get_job(job.id)
        except Exception as e:
            logger.exception("Job %s failed", job.id)
            try:
                return self.jobs.fail(job.id, job.attempts, str(e) or type(e).__name__)
            except ClaimLostError:
                logger.warning("Job %s attempt %d lost its claim; failure not recorded", job.id, job.attempts)
                return self.get_job(job.id)

        logger.info("Job %s completed: %s (%.1fs)", job.id, job.audio_url, job.duration_seconds)
        for task in self.post_success_tasks:
            task.run(job)
        return job

    def _run(self, job: Job, deadline: float) -> Job:
        lines = parse_script(job.script)
        if not lines:
            raise ScriptValidationError("No dialogue lines found in script")

        key_prefix = f"{SEGMENT_PREFIX}/{slugify(job.title)}-{job.id}"

        def checkpoint(progress: int, current_line: int, urls: list[str]) -> None:
            self.jobs.save_checkpoint(job.id, job.attempts, progress, current_line, urls)

        result = run_batches(
            lines, job, self.client, self.storage, key_prefix,
            checkpoint=checkpoint,
            deadline=deadline,
            clock=self.clock,
            sleep=self.sleep,
        )
        if self.clock() > deadline:
            raise JobTimeoutError("Processing budget exceeded before assembly")

        options = replace(self.mix_options, title=job.title)
        assembled = assemble(result.segments, options, fetch=self.fetch)
        for meta, start in zip(result.segment_metadata, assembled.start_times):
            meta.start_time = round(start, 3)

        fmt = options.output_format
        audio_url = self.storage.put(f"{key_prefix}.{fmt}", assembled.audio, CONTENT_TYPES[fmt])
        return self.jobs.complete(
            job.id, job.attempts, audio_url, assembled.duration_seconds,
            result.segment_urls, result.segment_metadata,
        )

    # --- Post-success tasks ---

    def _link_locales(self, job: Job) -> None:
        if not job.post_id:
            return
        for locale in SUPPORTED_LOCALES:
            self.posts.upsert(job.post_id, locale, job.audio_url, job.duration_seconds, job.script)
        logger.info("Linked job %s to post %s for %s", job.id, job.post_id, ", ".join(SUPPORTED_LOCALES))

    def _advance_personality(self, job: Job) -> None:
        advance_personality(self.personalities, personality_locale(job.source_locale), job.script, self.rng)
