"""
Innertube transport: one (profile, operation) request, no retries.

Every failure is mapped onto one of three categories the orchestrator
acts on: NetworkError (retry the same profile), RejectedByServerError
and MalformedResponseError (move on to the next profile).
"""

import json
import logging
from typing import Any

import httpx

from ..config import get_settings
from ..errors import MalformedResponseError, NetworkError, RejectedByServerError
from ..models.enums import Operation
from ..models.innertube import RawInnertubeResponse
from .clients import ClientProfile
from .http_client import HTTPClient

logger = logging.getLogger(__name__)

# Only return videos in search results
SEARCH_VIDEOS_PARAMS = "EgIQAfABAQ=="

# Experiment ids in GFEEDBACK tracking params that mark a bot-check response
_BOT_CHECK_EXPERIMENTS = {"51217102", "51217476"}


def is_bot_checked(payload: dict) -> bool:
    """True when the response carries the platform's bot-detection markers."""
    tracking = (payload.get("responseContext") or {}).get("serviceTrackingParams") or []
    for service in tracking:
        if not isinstance(service, dict) or service.get("service") != "GFEEDBACK":
            continue
        for param in service.get("params") or []:
            if isinstance(param, dict) and param.get("key") == "e":
                values = str(param.get("value", "")).split(",")
                if _BOT_CHECK_EXPERIMENTS.intersection(values):
                    return True
    return False


class InnertubeTransport:
    """Sends Innertube requests shaped like one client persona."""

    def __init__(
        self,
        http: HTTPClient,
        language: str | None = None,
        region: str | None = None,
    ):
        settings = get_settings()
        self._http = http
        self.language = language or settings.language
        self.region = region or settings.region

    def build_body(
        self,
        profile: ClientProfile,
        operation: Operation,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"context": profile.context(self.language, self.region)}
        if operation == Operation.PLAYER:
            body["videoId"] = params["video_id"]
            body["contentCheckOk"] = True
            body["racyCheckOk"] = True
            timestamp = params.get("signature_timestamp")
            if timestamp is not None:
                body["playbackContext"] = {
                    "contentPlaybackContext": {"signatureTimestamp": timestamp}
                }
        elif operation == Operation.SEARCH:
            body["query"] = params["query"]
            body["params"] = params.get("params", SEARCH_VIDEOS_PARAMS)
        return body

    @staticmethod
    def endpoint_url(profile: ClientProfile, operation: Operation) -> str:
        return (
            f"https://{profile.hostname}/youtubei/v1/{operation.value}"
            f"?key={profile.api_key}&prettyPrint=false"
        )

    async def execute(
        self,
        profile: ClientProfile,
        operation: Operation,
        params: dict[str, Any],
    ) -> RawInnertubeResponse:
        """
        Send one request. ``params`` holds ``video_id`` (and optionally
        ``signature_timestamp`` / ``player_url``) for PLAYER, ``query`` for SEARCH.
        """
        client = profile.name
        url = self.endpoint_url(profile, operation)
        body = self.build_body(profile, operation, params)

        try:
            response = await self._http.post(
                url,
                content=json.dumps(body),
                headers=profile.headers(),
                retries=0,
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"{type(e).__name__}: {e}", client=client) from e

        status = response.status_code
        if status >= 500:
            raise NetworkError(f"HTTP {status}", client=client, status_code=status)
        if status >= 400:
            raise RejectedByServerError(f"HTTP {status}", client=client, status_code=status)

        try:
            payload = json.loads(response.content.decode("utf-8", errors="replace"))
        except json.JSONDecodeError as e:
            raise MalformedResponseError(
                f"Invalid JSON: {e}", client=client, status_code=status
            ) from e
        if not isinstance(payload, dict):
            raise MalformedResponseError(
                f"Expected a JSON object, got {type(payload).__name__}",
                client=client,
                status_code=status,
            )

        if is_bot_checked(payload):
            raise RejectedByServerError("Bot check triggered", client=client, status_code=status)

        logger.debug("%s %s via %s: HTTP %d", operation.value, params, client, status)
        return RawInnertubeResponse(
            client_type=profile.client_type,
            operation=operation,
            payload=payload,
            player_url=params.get("player_url"),
        )
