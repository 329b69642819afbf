"""
Per-player-version cache of CipherPrograms.

Built entries are read without locking. Builds are serialized per player
version with one asyncio.Lock per key, so unrelated versions never wait
on each other and concurrent callers for one version share a single
build. An entry is stored only once its build has fully succeeded.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

import httpx

from ..config import get_settings
from ..errors import CipherError, ExtractionFailedError
from .cipher import CipherProgram
from .sandbox import ScriptSandbox

logger = logging.getLogger(__name__)

ScriptFetcher = Callable[[], Awaitable[str]]


class _KeyLock:
    """A build lock and the number of callers holding or waiting on it."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class CipherCache:
    def __init__(
        self,
        sandbox: ScriptSandbox | None = None,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sandbox = sandbox if sandbox is not None else ScriptSandbox()
        self.ttl = get_settings().cipher_cache_ttl if ttl is None else ttl
        self._clock = clock
        self._entries: dict[str, tuple[CipherProgram, float]] = {}
        self._locks: dict[str, _KeyLock] = {}
        self.builds = 0

    def __contains__(self, player_version: str) -> bool:
        return self.get(player_version) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, player_version: str) -> CipherProgram | None:
        """Return the cached program if present and not stale."""
        entry = self._entries.get(player_version)
        if entry is None:
            return None
        program, stored_at = entry
        if self.ttl and self._clock() - stored_at >= self.ttl:
            return None
        return program

    async def get_or_build(self, player_version: str, script_fetcher: ScriptFetcher) -> CipherProgram:
        """
        Return the program for ``player_version``, building it on a miss.

        ``script_fetcher`` is awaited only when a build is needed. Build
        failures raise ExtractionFailedError and leave the key absent so a
        later call can retry.
        """
        program = self.get(player_version)
        if program is not None:
            return program

        key_lock = self._locks.get(player_version)
        if key_lock is None:
            key_lock = self._locks[player_version] = _KeyLock()
        key_lock.users += 1
        try:
            async with key_lock.lock:
                program = self.get(player_version)
                if program is not None:
                    return program

                program = await self._build(player_version, script_fetcher)
                # Replaces any stale entry wholesale
                self._entries[player_version] = (program, self._clock())
                return program
        finally:
            key_lock.users -= 1
            if not key_lock.users:
                del self._locks[player_version]

    async def _build(self, player_version: str, script_fetcher: ScriptFetcher) -> CipherProgram:
        self.builds += 1
        logger.info("Building cipher program for player %s", player_version)
        try:
            source = await script_fetcher()
        except httpx.HTTPError as e:
            raise ExtractionFailedError(
                f"Could not download player script {player_version}: {e}", cause=e
            ) from e

        try:
            return await self.sandbox.extract_transform_async(source, player_version)
        except ExtractionFailedError:
            raise
        except CipherError as e:
            raise ExtractionFailedError(
                f"Could not decode player script {player_version}: {e}", cause=e
            ) from e

    def clear(self, player_version: str | None = None):
        if player_version is None:
            self._entries.clear()
        else:
            self._entries.pop(player_version, None)


_cipher_cache: CipherCache | None = None


def get_cipher_cache() -> CipherCache:
    global _cipher_cache
    if _cipher_cache is None:
        _cipher_cache = CipherCache()
    return _cipher_cache
