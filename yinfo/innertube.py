"""
Library entry point.

    async with Innertube() as yt:
        info = await yt.fetch_video_info("https://youtu.be/dQw4w9WgXcQ")
        results = await yt.search("lofi hip hop")
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .config import Settings, get_settings
from .core.cipher_cache import CipherCache, get_cipher_cache
from .core.clients import ClientProfile, get_profile, ordered_profiles
from .core.http_client import HTTPClient
from .core.orchestrator import RequestOrchestrator
from .core.player import PlayerScripts
from .core.resolver import MetadataResolver
from .core.transport import InnertubeTransport
from .core.url_matcher import extract_video_id
from .models.enums import Operation
from .models.response import SearchResult, VideoInfo

logger = logging.getLogger(__name__)


class Innertube:
    """Fetches video info and search results through the Innertube API."""

    def __init__(
        self,
        settings: Settings | None = None,
        http: HTTPClient | None = None,
        cache: CipherCache | None = None,
        profiles: list[ClientProfile | str] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings if settings is not None else get_settings()
        self._owns_http = http is None
        self.http = http if http is not None else HTTPClient(
            timeout=self.settings.request_timeout,
            max_retries=self.settings.max_retries,
        )
        self.cache = cache if cache is not None else get_cipher_cache()

        if profiles is None:
            self.profiles = ordered_profiles(self.settings.client_order_list())
        else:
            self.profiles = [p if isinstance(p, ClientProfile) else get_profile(p) for p in profiles]

        self.players = PlayerScripts(self.http, self.cache, ttl=self.settings.player_url_ttl)
        self.transport = InnertubeTransport(
            self.http, language=self.settings.language, region=self.settings.region
        )
        self.resolver = MetadataResolver(
            self.players, self.cache.sandbox, decipher_n=self.settings.decipher_n
        )
        self.orchestrator = RequestOrchestrator(
            self.transport,
            self.resolver,
            self.players,
            self.profiles,
            profile_retries=self.settings.profile_retries,
            sleep=sleep,
        )

    async def fetch_video_info(self, url_or_id: str) -> VideoInfo:
        """Resolve metadata and stream URLs for a video URL or ID."""
        video_id = extract_video_id(url_or_id)
        return await self.orchestrator.resolve(Operation.PLAYER, video_id)

    async def search(self, query: str) -> list[SearchResult]:
        """Search for videos. Only search-capable personas are used."""
        query = query.strip()
        if not query:
            raise ValueError("Search query must not be empty")
        return await self.orchestrator.resolve(Operation.SEARCH, query)

    async def close(self):
        if self._owns_http:
            await self.http.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


async def fetch_video_info(url_or_id: str) -> VideoInfo:
    async with Innertube() as yt:
        return await yt.fetch_video_info(url_or_id)


async def search(query: str) -> list[SearchResult]:
    async with Innertube() as yt:
        return await yt.search(query)
