"""
Video URL matching.

Each pattern carries a named ``id`` group. URLs are normalized first
(scheme added, host aliases resolved) and then matched against all
registered patterns. Bare 11-character IDs are accepted as-is.
"""

import logging
import re
from urllib.parse import urlparse, urlunparse

from ..errors import InvalidVideoIdError

logger = logging.getLogger(__name__)

_ID = r"(?P<id>[a-zA-Z0-9_-]{11})(?![a-zA-Z0-9_-])"

_BARE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{11}$")


class URLPattern:
    """A URL pattern with a named group for the video ID."""

    def __init__(self, name: str, pattern: str, id_group: str = "id"):
        self.name = name
        self.pattern = re.compile(pattern, re.IGNORECASE)
        self.id_group = id_group


class MatchResult:
    """Result of a URL match."""

    def __init__(self, video_id: str, original_url: str, kind: str):
        self.video_id = video_id
        self.original_url = original_url
        self.kind = kind

    def __repr__(self):
        return f"MatchResult(video_id={self.video_id!r}, kind={self.kind!r})"


# Host aliases resolved before matching
URL_ALIASES: dict[str, str] = {
    "m.youtube.com": "youtube.com",
    "music.youtube.com": "youtube.com",
    "youtube-nocookie.com": "youtube.com",
}

_PATTERNS: list[URLPattern] = [
    URLPattern("watch", rf"^https?://youtube\.com/watch/?\?(?:[^#]*&)?v={_ID}"),
    URLPattern("embed", rf"^https?://youtube\.com/embed/{_ID}"),
    URLPattern("v", rf"^https?://youtube\.com/v/{_ID}"),
    URLPattern("shorts", rf"^https?://youtube\.com/shorts/{_ID}"),
    URLPattern("live", rf"^https?://youtube\.com/live/{_ID}"),
    URLPattern("short_link", rf"^https?://youtu\.be/{_ID}"),
]


def normalize_url(url: str) -> str:
    """Add a scheme, drop ``www.`` and resolve host aliases."""
    url = url.strip()

    if not url.startswith(("http://", "https://")):
        url = "https://" + url

    parsed = urlparse(url)
    hostname = (parsed.hostname or "").removeprefix("www.")
    hostname = URL_ALIASES.get(hostname, hostname)

    return urlunparse(parsed._replace(netloc=hostname))


def match_url(url: str) -> MatchResult | None:
    """
    Match a URL against all registered patterns.

    Returns a MatchResult with the video ID, or None if no match is found.
    """
    normalized = normalize_url(url)

    for pattern in _PATTERNS:
        match = pattern.pattern.search(normalized)
        if match:
            return MatchResult(
                video_id=match.group(pattern.id_group),
                original_url=url,
                kind=pattern.name,
            )

    return None


def extract_video_id(url_or_id: str) -> str:
    """Return the video ID from a URL or a bare ID, or raise InvalidVideoIdError."""
    if not isinstance(url_or_id, str):
        raise InvalidVideoIdError(f"Invalid video id or URL: {url_or_id!r}")

    candidate = url_or_id.strip()
    if _BARE_ID_RE.match(candidate):
        return candidate

    if candidate and not any(ch.isspace() for ch in candidate):
        result = match_url(candidate)
        if result is not None:
            return result.video_id

    logger.debug("No video id in %r", url_or_id)
    raise InvalidVideoIdError(f"Invalid video id or URL: {url_or_id!r}")
