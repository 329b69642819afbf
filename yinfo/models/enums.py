from enum import Enum


class ClientType(str, Enum):
    WEB = "web"
    MWEB = "mweb"
    WEB_EMBEDDED = "web_embedded"
    WEB_CREATOR = "web_creator"
    ANDROID = "android"
    ANDROID_EMBEDDED = "android_embedded"
    ANDROID_CREATOR = "android_creator"
    ANDROID_VR = "android_vr"
    IOS = "ios"
    IOS_EMBEDDED = "ios_embedded"
    IOS_CREATOR = "ios_creator"
    TV_EMBEDDED = "tv_embedded"


class Capability(str, Enum):
    REQUIRES_PLAYER = "requires_player"
    PLAIN_URLS = "plain_urls"
    AGE_RESTRICTED = "age_restricted"
    ADAPTIVE_FORMATS = "adaptive_formats"
    EMBEDDED = "embedded"
    SEARCH = "search"


class Operation(str, Enum):
    PLAYER = "player"
    SEARCH = "search"


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class FailureKind(str, Enum):
    NETWORK = "network"
    REJECTED = "rejected"
    MALFORMED = "malformed"
    UNPLAYABLE = "unplayable"
    CIPHER = "cipher"
    NO_FORMATS = "no_formats"


class FormatType(str, Enum):
    VIDEO_ONLY = "video_only"
    AUDIO_ONLY = "audio_only"
    COMBINED = "combined"


class AudioQuality(str, Enum):
    ULTRALOW = "AUDIO_QUALITY_ULTRALOW"
    LOW = "AUDIO_QUALITY_LOW"
    MEDIUM = "AUDIO_QUALITY_MEDIUM"
    HIGH = "AUDIO_QUALITY_HIGH"
