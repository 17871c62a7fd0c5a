"""Durable object storage for segments and final episodes."""

import logging
import os
import re
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests

from podcast_producer.constants import OUTPUT_DIR, TTS_CONNECT_TIMEOUT, TTS_READ_TIMEOUT

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
}


def slugify(title: str | None, fallback: str = "podcast", max_length: int = 50) -> str:
    """Convert a title to a storage-safe slug.

    "Morning Briefing #12" → "morning-briefing-12"
    """
    # Replace non-alphanumeric with hyphen, collapse multiples, strip edges
    slug = re.sub(r"[^a-z0-9]+", "-", (title or "").lower()).strip("-")
    return slug[:max_length] or fallback


class LocalObjectStorage:
    """Write-once object store on the local filesystem.

    Objects land under ``root/<key>``. URLs are ``<public_base_url>/<key>``
    when a base URL is configured (e.g. a CDN in front of the directory),
    ``file://`` URLs otherwise.
    """

    def __init__(self, root: str = os.path.join(OUTPUT_DIR, "storage"), public_base_url: str | None = None):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.root.mkdir(parents=True, exist_ok=True)

    def put(self, key: str, data: bytes, content_type: str = "audio/mpeg") -> str:
        """Store bytes under key and return the public URL."""
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write to a temp name first so readers never see a partial object
        tmp_path = path.with_name(path.name + ".part")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
        logger.debug("Stored %s (%d bytes, %s)", key, len(data), content_type)
        return self.url_for(key)

    def url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return (self.root / key).resolve().as_uri()


def fetch_bytes(url: str) -> bytes:
    """Read an object by URL: http(s), file://, or a plain filesystem path."""
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        response = requests.get(url, timeout=(TTS_CONNECT_TIMEOUT, TTS_READ_TIMEOUT))
        response.raise_for_status()
        return response.content
    if parsed.scheme == "file":
        return Path(unquote(parsed.path)).read_bytes()
    return Path(url).read_bytes()


def audio_format_from_url(url: str, default: str = "mp3") -> str:
    ext = os.path.splitext(urlparse(url).path)[1].lstrip(".").lower()
    return ext if ext in CONTENT_TYPES else default
