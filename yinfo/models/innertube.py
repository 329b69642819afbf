from typing import Any

from pydantic import BaseModel, ConfigDict

from ..core.cipher import player_version_from_url
from .enums import ClientType, Operation


class RawInnertubeResponse(BaseModel):
    """Decoded response of one (profile, operation) request."""

    model_config = ConfigDict(frozen=True)

    client_type: ClientType
    operation: Operation
    payload: dict[str, Any]
    # Player script whose signature timestamp was sent with the request
    player_url: str | None = None

    @property
    def playability_status(self) -> str | None:
        status = self.payload.get("playabilityStatus")
        return status.get("status") if isinstance(status, dict) else None

    @property
    def playability_reason(self) -> str | None:
        status = self.payload.get("playabilityStatus")
        if not isinstance(status, dict):
            return None
        messages = status.get("messages") or [None]
        return status.get("reason") or messages[0]

    @property
    def is_playable(self) -> bool:
        return self.playability_status == "OK"

    @property
    def player_version(self) -> str | None:
        return player_version_from_url(self.player_url) if self.player_url else None
