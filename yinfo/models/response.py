from pydantic import BaseModel, ConfigDict, Field

from ..core.mime import acodec_rank, vcodec_rank
from .enums import AttemptOutcome, AudioQuality, ClientType, FailureKind, FormatType


class StreamFormat(BaseModel):
    """A single resolved media stream."""

    model_config = ConfigDict(frozen=True)

    itag: int = Field(..., description="Stream identifier")
    url: str = Field(..., description="Direct URL to the media stream")
    signature: str | None = Field(
        None, description="Ciphered signature still to be applied (unresolved streams only)"
    )
    signature_param: str = Field("signature", description="Query parameter for the signature")
    mime_type: str | None = Field(None, description="Full mime type including codecs")
    container: str | None = Field(None, description="Container / file extension (mp4, webm, m4a)")
    vcodec: str | None = Field(None, description="Video codec (avc1, vp9, av01, none)")
    acodec: str | None = Field(None, description="Audio codec (mp4a, opus, none)")
    format_type: FormatType = Field(
        FormatType.COMBINED,
        description="Type: video_only, audio_only, or combined",
    )
    bitrate: int | None = Field(None, description="Peak bitrate in bits/s")
    average_bitrate: int | None = Field(None, description="Average bitrate in bits/s")
    width: int | None = Field(None, description="Video width in pixels")
    height: int | None = Field(None, description="Video height in pixels")
    fps: float | None = Field(None, description="Frames per second")
    quality: str | None = Field(None, description="Platform quality name (hd720, medium, ...)")
    quality_label: str | None = Field(None, description="Quality label (e.g., '1080p60')")
    audio_quality: AudioQuality | None = Field(None, description="Audio quality bucket")
    audio_sample_rate: int | None = Field(None, description="Audio sample rate in Hz")
    audio_channels: int | None = Field(None, description="Number of audio channels")
    content_length: int | None = Field(None, description="Size in bytes")
    approx_duration_ms: int | None = Field(None, description="Approximate duration in ms")

    @property
    def is_ciphered(self) -> bool:
        return self.signature is not None


class SubtitleTrack(BaseModel):
    """Information about a caption track."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="URL to the subtitle file")
    lang: str = Field(..., description="Language code")
    lang_name: str | None = Field(None, description="Human-readable language name")
    ext: str | None = Field(None, description="Subtitle format (vtt, srv3, json3)")
    is_auto_generated: bool = Field(False, description="Whether auto-generated")


class Thumbnail(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    width: int | None = None
    height: int | None = None


class AttemptRecord(BaseModel):
    """One client profile's outcome within a single call."""

    model_config = ConfigDict(frozen=True)

    client: ClientType = Field(..., description="Client persona that was tried")
    outcome: AttemptOutcome
    failure: FailureKind | None = Field(None, description="Failure category, if it failed")
    reason: str | None = Field(None, description="Error message or playability reason")
    attempts: int = Field(1, description="Transport attempts made with this profile")


class VideoInfo(BaseModel):
    """Resolved metadata for one video."""

    model_config = ConfigDict(frozen=True)

    video_id: str
    title: str | None = None
    author: str | None = None
    channel_id: str | None = None
    description: str | None = None
    duration: int | None = Field(None, description="Duration in seconds")
    view_count: int | None = None
    keywords: list[str] = Field(default_factory=list)
    is_live: bool = False
    is_private: bool = False
    age_restricted: bool = False
    upload_date: str | None = Field(None, description="Upload date (YYYY-MM-DD)")
    thumbnails: list[Thumbnail] = Field(default_factory=list)
    formats: list[StreamFormat] = Field(
        default_factory=list, description="Resolved formats in response order"
    )
    subtitles: dict[str, list[SubtitleTrack]] = Field(
        default_factory=dict, description="Caption tracks keyed by language code"
    )
    client: ClientType = Field(..., description="Client persona that produced this result")
    player_version: str | None = Field(None, description="Player script used for deciphering")
    trace: list[AttemptRecord] = Field(
        default_factory=list, description="Per-profile attempts, in order"
    )

    def best_video(self) -> StreamFormat | None:
        """Highest video-only stream by resolution, fps, bitrate, then codec."""
        candidates = [f for f in self.formats if f.format_type == FormatType.VIDEO_ONLY]
        return max(
            candidates,
            key=lambda f: (
                f.height or 0,
                f.fps or 0,
                f.bitrate or 0,
                vcodec_rank(f.vcodec),
            ),
            default=None,
        )

    def best_audio(self) -> StreamFormat | None:
        candidates = [f for f in self.formats if f.format_type == FormatType.AUDIO_ONLY]
        return max(
            candidates,
            key=lambda f: (f.average_bitrate or f.bitrate or 0, acodec_rank(f.acodec)),
            default=None,
        )

    def best_combined(self) -> StreamFormat | None:
        candidates = [f for f in self.formats if f.format_type == FormatType.COMBINED]
        return max(
            candidates,
            key=lambda f: (f.height or 0, f.bitrate or 0),
            default=None,
        )


class SearchResult(BaseModel):
    """One video item from a search response."""

    model_config = ConfigDict(frozen=True)

    video_id: str
    title: str | None = None
    channel: str | None = None
    channel_id: str | None = None
    duration: int | None = Field(None, description="Duration in seconds")
    view_count: int | None = None
    published: str | None = Field(None, description="Relative publish time as displayed")
    description: str | None = None
    thumbnails: list[Thumbnail] = Field(default_factory=list)


class SearchResponse(BaseModel):
    """Response model for the /search endpoint."""

    success: bool = Field(True)
    query: str
    results: list[SearchResult] = Field(default_factory=list)


class ClientInfo(BaseModel):
    """Public view of a client persona for the /clients endpoint."""

    name: ClientType
    client_name: str
    client_version: str
    priority: int
    default_enabled: bool
    capabilities: list[str]


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = Field(False)
    error: str = Field(..., description="Error message")
    error_code: str | None = Field(None, description="Machine-readable error code")
    failures: list[AttemptRecord] = Field(
        default_factory=list, description="Per-profile failures, when all profiles failed"
    )
