"""
Locates the current player script and hands out its CipherProgram.

The player URL is read from the embed page's ``"jsUrl"`` and kept for
``player_url_ttl`` seconds. Programs are cached per player version in a
CipherCache.
"""

import asyncio
import logging
import re
import time
from collections.abc import Callable

import httpx

from ..config import get_settings
from ..errors import ExtractionFailedError
from .cipher import CipherProgram, player_version_from_url
from .cipher_cache import CipherCache, get_cipher_cache
from .http_client import HTTPClient

logger = logging.getLogger(__name__)

EMBED_URL = "https://www.youtube.com/embed/"
_BASE_URL = "https://www.youtube.com"

_JS_URL_RE = re.compile(r'"jsUrl"\s*:\s*"([^"]+)"')


def normalize_player_url(url: str) -> str:
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("/"):
        return _BASE_URL + url
    return url


class PlayerScripts:
    def __init__(
        self,
        http: HTTPClient,
        cache: CipherCache | None = None,
        ttl: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._http = http
        self.cache = cache if cache is not None else get_cipher_cache()
        self._ttl = get_settings().player_url_ttl if ttl is None else ttl
        self._clock = clock
        self._url: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def _fresh_url(self) -> str | None:
        if self._url and self._clock() < self._expires_at:
            return self._url
        return None

    async def current_url(self) -> str:
        """Return the current player script URL, refreshing it from the embed page when expired."""
        url = self._fresh_url()
        if url:
            return url

        async with self._lock:
            url = self._fresh_url()
            if url:
                return url

            try:
                page = await self._http.get_text(EMBED_URL)
            except httpx.HTTPError as e:
                raise ExtractionFailedError(f"Could not load embed page: {e}", cause=e) from e

            match = _JS_URL_RE.search(page)
            if not match:
                raise ExtractionFailedError("No player script URL found on the embed page")

            url = normalize_player_url(match.group(1).replace("\\/", "/"))
            self._url = url
            self._expires_at = self._clock() + self._ttl
            logger.info("Player script: %s", url)
            return url

    async def program_for(self, player_url: str) -> CipherProgram:
        """Return the (cached) CipherProgram of the given player script."""
        version = player_version_from_url(player_url)

        async def fetch_script() -> str:
            return await self._http.get_text(player_url)

        return await self.cache.get_or_build(version, fetch_script)

    async def current_program(self) -> tuple[str, CipherProgram]:
        url = await self.current_url()
        return url, await self.program_for(url)
