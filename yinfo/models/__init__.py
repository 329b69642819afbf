from .enums import (
    AttemptOutcome,
    AudioQuality,
    Capability,
    ClientType,
    FailureKind,
    FormatType,
    Operation,
)
from .innertube import RawInnertubeResponse
from .response import (
    AttemptRecord,
    ClientInfo,
    ErrorResponse,
    SearchResponse,
    SearchResult,
    StreamFormat,
    SubtitleTrack,
    Thumbnail,
    VideoInfo,
)

__all__ = [
    "AttemptOutcome",
    "AttemptRecord",
    "AudioQuality",
    "Capability",
    "ClientInfo",
    "ClientType",
    "ErrorResponse",
    "FailureKind",
    "FormatType",
    "Operation",
    "RawInnertubeResponse",
    "SearchResponse",
    "SearchResult",
    "StreamFormat",
    "SubtitleTrack",
    "Thumbnail",
    "VideoInfo",
]
