"""CLI interface with subcommand routing for podcast jobs."""

import argparse
import json
import logging
import os
import shutil
import sys

from podcast_producer.config import Settings
from podcast_producer.constants import DEFAULT_PROVIDER, VERSION
from podcast_producer.errors import PodcastError
from podcast_producer.orchestrator import JobOrchestrator
from podcast_producer.parser import estimate_duration, parse_script, validate_emotions
from podcast_producer.tts import PROVIDERS
from podcast_producer.voices import list_voices


def _check_ffmpeg(output_format: str, provider: str | None = None):
    """MP3 segments and MP3 output go through ffmpeg; WAV is handled natively."""
    formats = {output_format}
    if provider in PROVIDERS:
        formats.add(PROVIDERS[provider].audio_format)
    if "mp3" in formats and not shutil.which("ffmpeg"):
        print("Error: ffmpeg is required to decode or encode MP3 audio but was not found.", file=sys.stderr)
        print("Install ffmpeg: https://ffmpeg.org/download.html", file=sys.stderr)
        raise SystemExit(1)


def _fail(message: str):
    print(f"Error: {message}", file=sys.stderr)
    raise SystemExit(1)


def _orchestrator() -> tuple[JobOrchestrator, Settings]:
    try:
        settings = Settings.from_env()
    except ValueError as e:
        _fail(str(e))
    return JobOrchestrator.from_settings(settings), settings


def _format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    minutes, secs = divmod(int(round(seconds)), 60)
    return f"{minutes}:{secs:02d}"


def cmd_new(args):
    """Create a pending job from a script file."""
    if not os.path.exists(args.file):
        _fail(f"File not found: {args.file}")
    with open(args.file, encoding="utf-8") as f:
        script = f.read()

    orchestrator, _ = _orchestrator()
    try:
        job_id, total_lines = orchestrator.create_job(
            script,
            host_voice_id=args.host_voice,
            guest_voice_id=args.guest_voice,
            provider=args.provider,
            model=args.model,
            title=args.title,
            post_id=args.post_id,
            source_locale=args.locale,
        )
    except PodcastError as e:
        _fail(str(e))

    lines = parse_script(script)
    print(f"Created job: {job_id}")
    print(f"Lines: {total_lines}")
    print(f"Estimated duration: {_format_duration(estimate_duration(lines))}")
    for warning in validate_emotions(lines):
        print(f"Warning: {warning}", file=sys.stderr)
    print(f"\nNext: podcast-producer process {job_id}")


def cmd_process(args):
    """Claim and run one job."""
    orchestrator, settings = _orchestrator()
    try:
        job = orchestrator.get_job(args.job_id) if args.job_id else orchestrator.jobs.peek_pending()
    except PodcastError as e:
        _fail(str(e))
    _check_ffmpeg(settings.output_format, job.provider if job else None)
    try:
        job = orchestrator.process_job(args.job_id)
    except PodcastError as e:
        _fail(str(e))

    if job is None:
        print("No pending jobs.")
        return
    _print_status(orchestrator.get_job_status(job.id))
    if job.status.value == "failed":
        raise SystemExit(1)


def _print_status(view: dict):
    print(f"Job:      {view['id']}")
    if view["title"]:
        print(f"Title:    {view['title']}")
    print(f"Status:   {view['status']}")
    print(f"Provider: {view['provider']}")
    print(f"Progress: {view['progress']}% ({view['current_line']}/{view['total_lines']} lines)")
    print(f"Attempts: {view['attempts']}")
    if "audio_url" in view:
        print(f"Audio:    {view['audio_url']}")
        print(f"Duration: {_format_duration(view['duration_seconds'])}")
    if "error_message" in view:
        print(f"Error:    {view['error_message']}")


def cmd_status(args):
    """Show a job's status projection."""
    orchestrator, _ = _orchestrator()
    try:
        view = orchestrator.get_job_status(args.job_id)
    except PodcastError as e:
        _fail(str(e))
    if args.json:
        print(json.dumps(view, indent=2))
    else:
        _print_status(view)


def cmd_list(args):
    """List recent jobs, newest first."""
    orchestrator, _ = _orchestrator()
    jobs = orchestrator.list_jobs()
    if not jobs:
        print("No jobs found.")
        return
    for job in jobs:
        title = job.title or "(untitled)"
        print(f"  {job.id}  {job.status.value:<10} {job.progress:>3}%  {title}")


def cmd_requeue(args):
    """Create a new pending job from a finished one."""
    orchestrator, _ = _orchestrator()
    try:
        new_id = orchestrator.requeue_job(args.job_id)
    except PodcastError as e:
        _fail(str(e))
    print(f"Requeued {args.job_id} as {new_id}")


def cmd_voices(args):
    """List voices per provider."""
    rows = list_voices(args.provider, args.filter)
    if not rows:
        print("No voices match.")
        return
    for provider, voice_id, description in rows:
        print(f"  {provider:<11} {voice_id:<24} {description}")


def main(argv: list[str] | None = None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="podcast-producer",
        description="Podcast Producer: turn two-speaker scripts into mixed podcast episodes",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # new
    new_parser = subparsers.add_parser("new", help="Create a job from a script file")
    new_parser.add_argument("file", help="Path to the HOST/GUEST script")
    new_parser.add_argument("--host-voice", required=True, help="Voice id for HOST lines")
    new_parser.add_argument("--guest-voice", required=True, help="Voice id for GUEST lines")
    new_parser.add_argument("--provider", default=DEFAULT_PROVIDER, choices=sorted(PROVIDERS))
    new_parser.add_argument("--model", help="Provider model (default depends on provider)")
    new_parser.add_argument("--title", help="Episode title")
    new_parser.add_argument("--post-id", help="Content record to link the episode to")
    new_parser.add_argument("--locale", help="Source locale of the script (de, en, cs, nds)")
    new_parser.set_defaults(func=cmd_new)

    # process
    process_parser = subparsers.add_parser("process", help="Process a job (default: oldest pending)")
    process_parser.add_argument("job_id", nargs="?", help="Job id")
    process_parser.set_defaults(func=cmd_process)

    # status
    status_parser = subparsers.add_parser("status", help="Show job status")
    status_parser.add_argument("job_id", help="Job id")
    status_parser.add_argument("--json", action="store_true", help="Print the full projection as JSON")
    status_parser.set_defaults(func=cmd_status)

    # list
    list_parser = subparsers.add_parser("list", help="List recent jobs")
    list_parser.set_defaults(func=cmd_list)

    # requeue
    requeue_parser = subparsers.add_parser("requeue", help="Reprocess a finished job as a new job")
    requeue_parser.add_argument("job_id", help="Job id")
    requeue_parser.set_defaults(func=cmd_requeue)

    # voices
    voices_parser = subparsers.add_parser("voices", help="List available voices")
    voices_parser.add_argument("--provider", choices=sorted(PROVIDERS), help="Only this provider")
    voices_parser.add_argument("--filter", help="Filter voices by substring")
    voices_parser.set_defaults(func=cmd_voices)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
