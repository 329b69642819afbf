"""Tests for the per-version cipher program cache."""

import asyncio

import httpx
import pytest

from yinfo.core.cipher import CipherOperation, CipherProgram
from yinfo.core.cipher_cache import CipherCache
from yinfo.errors import ExtractionFailedError, NoMatchingFunctionError


class FakeSandbox:
    """Stands in for ScriptSandbox; builds a one-operation program per call."""

    def __init__(self, delay=0.0, error=None):
        self.delay = delay
        self.error = error
        self.calls = []

    async def extract_transform_async(self, source, player_version):
        self.calls.append((source, player_version))
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return CipherProgram(
            player_version=player_version,
            operations=(CipherOperation.reverse(),),
        )


def fetcher(source="script", counter=None):
    async def fetch():
        if counter is not None:
            counter.append(source)
        return source

    return fetch


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestGetOrBuild:
    @pytest.mark.asyncio
    async def test_builds_on_miss(self):
        cache = CipherCache(sandbox=FakeSandbox(), ttl=0)
        program = await cache.get_or_build("v1", fetcher())
        assert program.player_version == "v1"
        assert "v1" in cache
        assert len(cache) == 1
        assert cache.builds == 1

    @pytest.mark.asyncio
    async def test_hit_skips_fetch(self):
        cache = CipherCache(sandbox=FakeSandbox(), ttl=0)
        fetched = []
        first = await cache.get_or_build("v1", fetcher(counter=fetched))
        second = await cache.get_or_build("v1", fetcher(counter=fetched))
        assert first is second
        assert len(fetched) == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_build(self):
        sandbox = FakeSandbox(delay=0.05)
        cache = CipherCache(sandbox=sandbox, ttl=0)
        fetched = []

        results = await asyncio.gather(
            *(cache.get_or_build("v1", fetcher(counter=fetched)) for _ in range(10))
        )

        assert len(sandbox.calls) == 1
        assert len(fetched) == 1
        assert cache.builds == 1
        assert all(r is results[0] for r in results)

    @pytest.mark.asyncio
    async def test_versions_build_independently(self):
        sandbox = FakeSandbox(delay=0.01)
        cache = CipherCache(sandbox=sandbox, ttl=0)
        a, b = await asyncio.gather(
            cache.get_or_build("v1", fetcher()), cache.get_or_build("v2", fetcher())
        )
        assert a.player_version == "v1"
        assert b.player_version == "v2"
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_failed_build_leaves_key_absent(self):
        sandbox = FakeSandbox(error=NoMatchingFunctionError("nothing"))
        cache = CipherCache(sandbox=sandbox, ttl=0)

        with pytest.raises(ExtractionFailedError) as exc_info:
            await cache.get_or_build("v1", fetcher())
        assert isinstance(exc_info.value.cause, NoMatchingFunctionError)
        assert "v1" not in cache

        sandbox.error = None
        program = await cache.get_or_build("v1", fetcher())
        assert program.player_version == "v1"
        assert len(sandbox.calls) == 2

    @pytest.mark.asyncio
    async def test_download_failure(self):
        async def failing_fetch():
            raise httpx.ConnectError("refused")

        cache = CipherCache(sandbox=FakeSandbox(), ttl=0)
        with pytest.raises(ExtractionFailedError) as exc_info:
            await cache.get_or_build("v1", failing_fetch)
        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        assert "v1" not in cache

    @pytest.mark.asyncio
    async def test_cancelled_build_leaves_key_absent(self):
        sandbox = FakeSandbox(delay=10)
        cache = CipherCache(sandbox=sandbox, ttl=0)

        task = asyncio.create_task(cache.get_or_build("v1", fetcher()))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert "v1" not in cache

        sandbox.delay = 0
        program = await cache.get_or_build("v1", fetcher())
        assert program.player_version == "v1"


# ── Build locks ──────────────────────────────────────────────────────
class TestBuildLocks:
    @pytest.mark.asyncio
    async def test_released_after_builds(self):
        sandbox = FakeSandbox(delay=0.01)
        cache = CipherCache(sandbox=sandbox, ttl=0)
        await asyncio.gather(*(cache.get_or_build("v1", fetcher()) for _ in range(5)))
        assert cache._locks == {}

        sandbox.error = NoMatchingFunctionError("nothing")
        results = await asyncio.gather(
            *(cache.get_or_build("v2", fetcher()) for _ in range(3)), return_exceptions=True
        )
        assert all(isinstance(r, ExtractionFailedError) for r in results)
        assert cache._locks == {}

    def test_usable_from_successive_event_loops(self):
        clock = FakeClock()
        cache = CipherCache(sandbox=FakeSandbox(delay=0.01), ttl=60, clock=clock)

        async def build_concurrently():
            return await asyncio.gather(*(cache.get_or_build("v1", fetcher()) for _ in range(3)))

        first = asyncio.run(build_concurrently())
        clock.now += 61
        second = asyncio.run(build_concurrently())

        assert first[0] is not second[0]
        assert cache.builds == 2


class TestExpiry:
    @pytest.mark.asyncio
    async def test_stale_entry_rebuilt(self):
        clock = FakeClock()
        sandbox = FakeSandbox()
        cache = CipherCache(sandbox=sandbox, ttl=60, clock=clock)

        first = await cache.get_or_build("v1", fetcher())
        clock.now += 30
        assert await cache.get_or_build("v1", fetcher()) is first

        clock.now += 31
        assert cache.get("v1") is None
        second = await cache.get_or_build("v1", fetcher())
        assert second is not first
        assert len(sandbox.calls) == 2
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_zero_ttl_never_expires(self):
        clock = FakeClock()
        cache = CipherCache(sandbox=FakeSandbox(), ttl=0, clock=clock)
        program = await cache.get_or_build("v1", fetcher())
        clock.now += 10**9
        assert cache.get("v1") is program


class TestClear:
    @pytest.mark.asyncio
    async def test_clear_one(self):
        cache = CipherCache(sandbox=FakeSandbox(), ttl=0)
        await cache.get_or_build("v1", fetcher())
        await cache.get_or_build("v2", fetcher())
        cache.clear("v1")
        assert "v1" not in cache
        assert "v2" in cache

    @pytest.mark.asyncio
    async def test_clear_all(self):
        cache = CipherCache(sandbox=FakeSandbox(), ttl=0)
        await cache.get_or_build("v1", fetcher())
        cache.clear()
        assert len(cache) == 0
