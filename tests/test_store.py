"""Tests for the SQLite stores."""

import threading

import pytest

from podcast_producer.errors import ClaimLostError, PodcastError
from podcast_producer.models import JobStatus, SegmentMeta, Speaker
from podcast_producer.store import JobStore, PersonalityStore, PostPodcastStore, utc_now


def _create(jobs, title="Episode"):
    return jobs.create(
        script="HOST: Hi\nGUEST: Hey",
        host_voice_id="h",
        guest_voice_id="g",
        provider="openai",
        total_lines=2,
        title=title,
    )


def test_create_and_get(db):
    jobs = JobStore(db)
    job = _create(jobs)
    assert job.status is JobStatus.PENDING
    assert job.attempts == 0
    assert job.total_lines == 2
    assert job.segment_urls == []
    assert jobs.get(job.id) == job
    assert jobs.get("missing") is None


def test_claim_by_id_moves_to_processing_once(db):
    jobs = JobStore(db)
    job = _create(jobs)
    claimed = jobs.claim(job.id)
    assert claimed.status is JobStatus.PROCESSING
    assert claimed.attempts == 1
    assert claimed.started_at is not None
    # Live processing job cannot be claimed again
    assert jobs.claim(job.id) is None
    assert jobs.get(job.id).attempts == 1


def test_claim_oldest_pending(db):
    jobs = JobStore(db)
    first = _create(jobs, "first")
    _create(jobs, "second")
    assert jobs.claim().id == first.id


def test_claim_none_pending(db):
    assert JobStore(db).claim() is None


def _age_claim(db, job_id, seconds=1000):
    with db.transaction() as conn:
        conn.execute("UPDATE podcast_jobs SET started_at = ? WHERE id = ?", (utc_now(-seconds), job_id))


def test_claim_recovers_stale_processing_job(db):
    jobs = JobStore(db)
    job = _create(jobs)
    jobs.claim(job.id)
    _age_claim(db, job.id)
    reclaimed = jobs.claim(job.id, stale_after=800)
    assert reclaimed is not None
    assert reclaimed.attempts == 2


def test_reclaim_clears_previous_checkpoint(db):
    jobs = JobStore(db)
    job = _create(jobs)
    jobs.claim(job.id)
    jobs.save_checkpoint(job.id, 1, 100, 2, ["u0", "u1"])
    _age_claim(db, job.id)
    reclaimed = jobs.claim(job.id, stale_after=800)
    assert (reclaimed.progress, reclaimed.current_line, reclaimed.segment_urls) == (0, 0, [])


def test_superseded_attempt_cannot_write(db):
    """After a stale reclaim only the newest attempt may checkpoint, complete or fail."""
    jobs = JobStore(db)
    job = _create(jobs)
    first = jobs.claim(job.id)
    _age_claim(db, job.id)
    second = jobs.claim(job.id, stale_after=800)
    assert (first.attempts, second.attempts) == (1, 2)

    with pytest.raises(ClaimLostError):
        jobs.save_checkpoint(job.id, first.attempts, 100, 2, ["old0", "old1"])
    with pytest.raises(ClaimLostError):
        jobs.fail(job.id, first.attempts, "Processing budget exceeded")
    with pytest.raises(ClaimLostError):
        jobs.complete(job.id, first.attempts, "file:///old.mp3", 2.0, ["old0", "old1"], [])

    current = jobs.get(job.id)
    assert current.status is JobStatus.PROCESSING
    assert current.segment_urls == []
    assert current.error_message is None

    jobs.save_checkpoint(job.id, second.attempts, 50, 1, ["new0"])
    assert jobs.get(job.id).segment_urls == ["new0"]


def test_concurrent_claims_single_winner(db):
    jobs = JobStore(db)
    job = _create(jobs)
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(jobs.claim(job.id))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len([r for r in results if r is not None]) == 1
    assert jobs.get(job.id).attempts == 1


def test_checkpoint_complete_and_fail_require_processing(db):
    jobs = JobStore(db)
    job = _create(jobs)
    with pytest.raises(PodcastError):
        jobs.save_checkpoint(job.id, 0, 50, 1, ["u0"])
    with pytest.raises(PodcastError):
        jobs.fail(job.id, 0, "nope")

    jobs.claim(job.id)
    jobs.save_checkpoint(job.id, 1, 50, 1, ["u0"])
    saved = jobs.get(job.id)
    assert (saved.progress, saved.current_line, saved.segment_urls) == (50, 1, ["u0"])

    meta = [SegmentMeta(0, Speaker.HOST, "Hi", 1.0, 0.0), SegmentMeta(1, Speaker.GUEST, "Hey", 1.0, 0.9)]
    done = jobs.complete(job.id, 1, "file:///ep.mp3", 2.4, ["u0", "u1"], meta)
    assert done.status is JobStatus.COMPLETED
    assert done.progress == 100
    assert done.segment_metadata == meta
    assert done.completed_at is not None
    # Terminal: no further transitions
    with pytest.raises(PodcastError):
        jobs.fail(job.id, 1, "late")


def test_fail_keeps_checkpoint(db):
    jobs = JobStore(db)
    job = _create(jobs)
    jobs.claim(job.id)
    jobs.save_checkpoint(job.id, 1, 100, 2, ["u0", "u1"])
    failed = jobs.fail(job.id, 1, "decode error")
    assert failed.status is JobStatus.FAILED
    assert failed.error_message == "decode error"
    assert failed.segment_urls == ["u0", "u1"]


def test_list_recent_newest_first(db):
    jobs = JobStore(db)
    ids = [_create(jobs, f"ep{i}").id for i in range(3)]
    assert [j.id for j in jobs.list_recent()] == ids[::-1]
    assert len(jobs.list_recent(limit=2)) == 2


def test_post_podcast_upsert(db):
    posts = PostPodcastStore(db)
    posts.upsert("post-1", "de", "file:///a.mp3", 10.0, "script")
    posts.upsert("post-1", "de", "file:///b.mp3", 12.0, "script")
    row = posts.get("post-1", "de")
    assert row["audio_url"] == "file:///b.mp3"
    assert row["status"] == "completed"
    assert posts.get("post-1", "en") is None


def test_personality_get_or_create_defaults(db):
    store = PersonalityStore(db)
    state = store.get_or_create("de")
    assert state.episode_count == 0
    assert state.relationship_phase == "strangers"
    assert state.traits["host_warmth"] == 0.5
    state.episode_count = 3
    state.memorable_moments = [{"episode": 3, "text": "x", "type": "joke"}]
    store.save(state)
    again = store.get_or_create("de")
    assert again.episode_count == 3
    assert again.memorable_moments == state.memorable_moments


def test_personality_set_paused(db):
    store = PersonalityStore(db)
    store.set_paused("en", True)
    assert store.get_or_create("en").paused is True


def test_peek_pending_does_not_claim(db):
    jobs = JobStore(db)
    assert jobs.peek_pending() is None
    first = _create(jobs, "first")
    _create(jobs, "second")
    assert jobs.peek_pending().id == first.id
    assert jobs.get(first.id).status is JobStatus.PENDING


def test_personality_update_is_atomic(db):
    store = PersonalityStore(db)

    def broken(state):
        state.episode_count += 1
        raise RuntimeError("mid-update")

    with pytest.raises(RuntimeError):
        store.update("de", broken)
    assert store.get_or_create("de").episode_count == 0
