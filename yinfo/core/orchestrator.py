"""
Request orchestration across client personas.

Profiles are tried strictly one after another in priority order. Each
profile gets a bounded number of network retries with back-off; any other
failure moves straight on to the next profile. The first profile that
produces a usable result wins, and every attempt along the way is kept in
the call's trace.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import get_settings
from ..errors import (
    AllProfilesExhaustedError,
    CipherError,
    MalformedResponseError,
    NetworkError,
    NoPlayableFormatsError,
    RejectedByServerError,
    TransportError,
)
from ..models.enums import AttemptOutcome, Capability, FailureKind, Operation
from ..models.innertube import RawInnertubeResponse
from ..models.response import AttemptRecord, SearchResult, VideoInfo
from .clients import ClientProfile
from .http_client import backoff
from .player import PlayerScripts
from .resolver import MetadataResolver
from .transport import InnertubeTransport

logger = logging.getLogger(__name__)


class RequestContext:
    """State of one logical call: remaining profiles and the attempt trace."""

    def __init__(self, operation: Operation, target: str, profiles: list[ClientProfile]):
        self.operation = operation
        self.target = target
        self.remaining: deque[ClientProfile] = deque(profiles)
        self.trace: list[AttemptRecord] = []

    @property
    def failures(self) -> list[AttemptRecord]:
        return [r for r in self.trace if r.outcome == AttemptOutcome.FAILURE]

    def record_success(self, profile: ClientProfile, attempts: int):
        self.trace.append(
            AttemptRecord(
                client=profile.client_type,
                outcome=AttemptOutcome.SUCCESS,
                attempts=attempts,
            )
        )

    def record_failure(
        self,
        profile: ClientProfile,
        failure: FailureKind,
        reason: str | None,
        attempts: int,
    ):
        logger.warning(
            "%s %r via %s failed (%s): %s",
            self.operation.value,
            self.target,
            profile.name,
            failure.value,
            reason,
        )
        self.trace.append(
            AttemptRecord(
                client=profile.client_type,
                outcome=AttemptOutcome.FAILURE,
                failure=failure,
                reason=reason,
                attempts=attempts,
            )
        )


class RequestOrchestrator:
    def __init__(
        self,
        transport: InnertubeTransport,
        resolver: MetadataResolver,
        players: PlayerScripts,
        profiles: list[ClientProfile],
        profile_retries: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.transport = transport
        self.resolver = resolver
        self.players = players
        self.profiles = list(profiles)
        self.profile_retries = (
            get_settings().profile_retries if profile_retries is None else profile_retries
        )
        self._sleep = sleep

    def profiles_for(self, operation: Operation) -> list[ClientProfile]:
        if operation == Operation.SEARCH:
            return [p for p in self.profiles if p.has(Capability.SEARCH)]
        return list(self.profiles)

    async def resolve(self, operation: Operation, target: str) -> VideoInfo | list[SearchResult]:
        """Try profiles in order until one yields a usable result."""
        ctx = RequestContext(operation, target, self.profiles_for(operation))
        saw_unresolvable = False

        while ctx.remaining:
            profile = ctx.remaining.popleft()

            params: dict[str, Any]
            if operation == Operation.PLAYER:
                params = {"video_id": target}
                if profile.requires_player:
                    try:
                        player_url, program = await self.players.current_program()
                    except CipherError as e:
                        ctx.record_failure(profile, FailureKind.CIPHER, str(e), 0)
                        continue
                    if program.signature_timestamp is None:
                        ctx.record_failure(
                            profile, FailureKind.CIPHER, "Player script has no signature timestamp", 0
                        )
                        continue
                    params["signature_timestamp"] = program.signature_timestamp
                    params["player_url"] = player_url
            else:
                params = {"query": target}

            try:
                raw, attempts = await self._execute_with_retries(profile, operation, params)
            except _ProfileFailed as failed:
                ctx.record_failure(profile, failed.kind, str(failed.error), failed.attempts)
                continue

            if operation == Operation.SEARCH:
                try:
                    results = self.resolver.resolve_search(raw)
                except MalformedResponseError as e:
                    ctx.record_failure(profile, FailureKind.MALFORMED, str(e), attempts)
                    continue
                ctx.record_success(profile, attempts)
                logger.info("search %r via %s: %d results", target, profile.name, len(results))
                return results

            if not raw.is_playable:
                ctx.record_failure(
                    profile,
                    FailureKind.UNPLAYABLE,
                    f"{raw.playability_status}: {raw.playability_reason}",
                    attempts,
                )
                continue

            try:
                info = await self.resolver.resolve(raw)
            except NoPlayableFormatsError as e:
                saw_unresolvable = True
                ctx.record_failure(profile, FailureKind.NO_FORMATS, str(e), attempts)
                continue

            ctx.record_success(profile, attempts)
            logger.info(
                "player %r via %s: %d formats", target, profile.name, len(info.formats)
            )
            return info.model_copy(update={"trace": list(ctx.trace)})

        if saw_unresolvable:
            raise NoPlayableFormatsError(target, failures=ctx.failures)
        raise AllProfilesExhaustedError(target, ctx.failures)

    async def _execute_with_retries(
        self,
        profile: ClientProfile,
        operation: Operation,
        params: dict[str, Any],
    ) -> tuple[RawInnertubeResponse, int]:
        """Run the transport, retrying network errors on the same profile."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self.transport.execute(profile, operation, params), attempt
            except NetworkError as e:
                if attempt > self.profile_retries:
                    raise _ProfileFailed(FailureKind.NETWORK, e, attempt) from e
                wait = backoff(attempt - 1)
                logger.debug(
                    "%s via %s: %s (attempt %d/%d). Retrying in %.1fs...",
                    operation.value,
                    profile.name,
                    e,
                    attempt,
                    self.profile_retries + 1,
                    wait,
                )
                await self._sleep(wait)
            except RejectedByServerError as e:
                raise _ProfileFailed(FailureKind.REJECTED, e, attempt) from e
            except MalformedResponseError as e:
                raise _ProfileFailed(FailureKind.MALFORMED, e, attempt) from e
            except TransportError as e:
                raise _ProfileFailed(FailureKind.REJECTED, e, attempt) from e


class _ProfileFailed(Exception):
    def __init__(self, kind: FailureKind, error: Exception, attempts: int):
        super().__init__(str(error))
        self.kind = kind
        self.error = error
        self.attempts = attempts
