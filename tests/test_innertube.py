"""End-to-end tests for the Innertube facade over a mocked network."""

import asyncio
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio

from conftest import EMBED_PAGE, PLAYER_PATH, PLAYER_VERSION
from yinfo.config import Settings
from yinfo.core.cipher_cache import CipherCache
from yinfo.core.http_client import HTTPClient
from yinfo.core.sandbox import ScriptSandbox
from yinfo.errors import AllProfilesExhaustedError, InvalidVideoIdError
from yinfo.innertube import Innertube
from yinfo.models.enums import AttemptOutcome, ClientType, FailureKind

# X-YouTube-Client-Name values
WEB, ANDROID, IOS = "1", "3", "5"

ANDROID_RESPONSE = {
    "playabilityStatus": {"status": "OK"},
    "videoDetails": {"videoId": "dQw4w9WgXcQ", "title": "Never Gonna Give You Up"},
    "streamingData": {
        "adaptiveFormats": [
            {
                "itag": 140,
                "url": "https://rr1---sn-abc.googlevideo.com/videoplayback?itag=140&n=abcDEF",
                "mimeType": 'audio/mp4; codecs="mp4a.40.2"',
            }
        ]
    },
}


class FakeYouTube:
    """MockTransport handler serving the embed page, player script and API."""

    def __init__(self, player_js, player_responses, search_response=None):
        self.player_js = player_js
        self.player_responses = player_responses
        self.search_response = search_response
        self.requests = []

    def paths(self):
        return [r.url.path for r in self.requests]

    def api_clients(self):
        return [r.headers["X-YouTube-Client-Name"] for r in self.requests if "/youtubei/" in r.url.path]

    def __call__(self, request):
        self.requests.append(request)
        path = request.url.path
        if path == "/embed/":
            return httpx.Response(200, text=EMBED_PAGE)
        if path == PLAYER_PATH:
            return httpx.Response(200, text=self.player_js)
        if path == "/youtubei/v1/player":
            response = self.player_responses.get(request.headers["X-YouTube-Client-Name"])
            if response is None:
                return httpx.Response(403)
            if isinstance(response, int):
                return httpx.Response(response)
            return httpx.Response(200, json=response)
        if path == "/youtubei/v1/search":
            return httpx.Response(200, json=self.search_response)
        return httpx.Response(404)


async def no_sleep(seconds):
    return None


@pytest_asyncio.fixture
async def make_client():
    resources = []

    def factory(handler, profiles=("web", "ios", "android")):
        http = HTTPClient(max_retries=0, transport=httpx.MockTransport(handler))
        sandbox = ScriptSandbox(timeout=5.0, max_steps=500_000, workers=1)
        resources.append((http, sandbox))
        return Innertube(
            settings=Settings(profile_retries=1, decipher_n=True),
            http=http,
            cache=CipherCache(sandbox=sandbox, ttl=0),
            profiles=list(profiles),
            sleep=no_sleep,
        )

    yield factory

    for http, sandbox in resources:
        await http.close()
        sandbox.shutdown()


def query(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class TestFetchVideoInfo:
    @pytest.mark.asyncio
    async def test_web_with_ciphered_streams(self, make_client, player_js, player_response):
        youtube = FakeYouTube(player_js, {WEB: player_response})
        yt = make_client(youtube)

        info = await yt.fetch_video_info("https://www.youtube.com/watch?v=dQw4w9WgXcQ")

        assert info.client == ClientType.WEB
        assert info.player_version == PLAYER_VERSION
        assert [f.itag for f in info.formats] == [18, 137, 140]
        assert query(info.formats[0].url)["sig"] == "YZWVUTSRQPONMLKJIHGFED"
        assert query(info.formats[0].url)["n"] == "n_FEDcba"
        assert [(r.client, r.outcome) for r in info.trace] == [(ClientType.WEB, AttemptOutcome.SUCCESS)]

        body = json.loads(youtube.requests[-1].content)
        assert body["videoId"] == "dQw4w9WgXcQ"
        assert body["playbackContext"]["contentPlaybackContext"]["signatureTimestamp"] == 19834
        assert PLAYER_VERSION in yt.cache

    @pytest.mark.asyncio
    async def test_player_script_fetched_once(self, make_client, player_js, player_response):
        youtube = FakeYouTube(player_js, {WEB: player_response})
        yt = make_client(youtube)

        await asyncio.gather(*(yt.fetch_video_info("dQw4w9WgXcQ") for _ in range(3)))
        await yt.fetch_video_info("dQw4w9WgXcQ")

        assert youtube.paths().count("/embed/") == 1
        assert youtube.paths().count(PLAYER_PATH) == 1
        assert yt.cache.builds == 1
        assert youtube.api_clients() == [WEB] * 4

    @pytest.mark.asyncio
    async def test_falls_back_to_android(self, make_client, player_js):
        unplayable = {"playabilityStatus": {"status": "ERROR", "reason": "Video unavailable"}}
        youtube = FakeYouTube(player_js, {WEB: 403, IOS: unplayable, ANDROID: ANDROID_RESPONSE})
        yt = make_client(youtube)

        info = await yt.fetch_video_info("dQw4w9WgXcQ")

        assert info.client == ClientType.ANDROID
        assert youtube.api_clients() == [WEB, IOS, ANDROID]
        assert [(r.client, r.failure) for r in info.trace] == [
            (ClientType.WEB, FailureKind.REJECTED),
            (ClientType.IOS, FailureKind.UNPLAYABLE),
            (ClientType.ANDROID, None),
        ]
        # Native clients are not tied to a player script
        assert info.player_version is None
        assert query(info.formats[0].url)["n"] == "abcDEF"

    @pytest.mark.asyncio
    async def test_server_errors_retried_then_fallback(self, make_client, player_js):
        youtube = FakeYouTube(player_js, {WEB: 503, ANDROID: ANDROID_RESPONSE})
        yt = make_client(youtube, profiles=("web", "android"))

        info = await yt.fetch_video_info("dQw4w9WgXcQ")

        assert youtube.api_clients() == [WEB, WEB, ANDROID]
        assert info.trace[0].failure == FailureKind.NETWORK
        assert info.trace[0].attempts == 2

    @pytest.mark.asyncio
    async def test_all_profiles_exhausted(self, make_client, player_js):
        youtube = FakeYouTube(player_js, {})
        yt = make_client(youtube)

        with pytest.raises(AllProfilesExhaustedError) as exc_info:
            await yt.fetch_video_info("dQw4w9WgXcQ")

        assert [f.client for f in exc_info.value.failures] == [
            ClientType.WEB,
            ClientType.IOS,
            ClientType.ANDROID,
        ]

    @pytest.mark.asyncio
    async def test_broken_player_script_skips_web(self, make_client, player_response):
        youtube = FakeYouTube("var nothing=1;", {WEB: player_response, ANDROID: ANDROID_RESPONSE})
        yt = make_client(youtube, profiles=("web", "android"))

        info = await yt.fetch_video_info("dQw4w9WgXcQ")

        assert info.client == ClientType.ANDROID
        assert info.trace[0].failure == FailureKind.CIPHER
        assert youtube.api_clients() == [ANDROID]
        assert PLAYER_VERSION not in yt.cache

    @pytest.mark.asyncio
    async def test_runaway_player_script_skips_web(self, make_client, player_js, player_response):
        runaway = player_js.replace("Nm:function(a,b){a.splice(0,b)}", "Nm:function(a,b){XY.Nm(a,b)}")
        youtube = FakeYouTube(runaway, {WEB: player_response, ANDROID: ANDROID_RESPONSE})
        yt = make_client(youtube, profiles=("web", "android"))

        info = await yt.fetch_video_info("dQw4w9WgXcQ")

        assert info.client == ClientType.ANDROID
        assert info.trace[0].failure == FailureKind.CIPHER
        assert PLAYER_VERSION not in yt.cache

    @pytest.mark.asyncio
    async def test_invalid_id_makes_no_requests(self, make_client, player_js):
        youtube = FakeYouTube(player_js, {})
        yt = make_client(youtube)

        with pytest.raises(InvalidVideoIdError):
            await yt.fetch_video_info("https://example.com/not-a-video")
        assert youtube.requests == []


class TestWiring:
    @pytest.mark.asyncio
    async def test_empty_injected_cache_is_used(self):
        sandbox = ScriptSandbox(workers=1)
        cache = CipherCache(sandbox=sandbox, ttl=0)
        assert len(cache) == 0

        async with Innertube(settings=Settings(), cache=cache, profiles=["web"]) as yt:
            assert yt.cache is cache
            assert yt.players.cache is cache
            assert yt.resolver.sandbox is sandbox
        sandbox.shutdown()


class TestSearch:
    @pytest.mark.asyncio
    async def test_search(self, make_client, player_js, search_response):
        youtube = FakeYouTube(player_js, {}, search_response)
        yt = make_client(youtube)

        results = await yt.search("  lofi hip hop ")

        assert [r.video_id for r in results] == ["jfKfPfyJRdk", "5qap5aO4i9A"]
        assert youtube.paths() == ["/youtubei/v1/search"]
        assert json.loads(youtube.requests[0].content)["query"] == "lofi hip hop"

    @pytest.mark.asyncio
    async def test_empty_query(self, make_client, player_js):
        yt = make_client(FakeYouTube(player_js, {}))
        with pytest.raises(ValueError):
            await yt.search("   ")
