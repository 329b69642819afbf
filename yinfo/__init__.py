"""yinfo: Innertube video info and search with multi-client fallback."""

from .config import get_settings
from .errors import (
    AllProfilesExhaustedError,
    InvalidVideoIdError,
    NoPlayableFormatsError,
    YinfoError,
)
from .innertube import Innertube, fetch_video_info, search
from .main import app

__all__ = [
    "AllProfilesExhaustedError",
    "Innertube",
    "InvalidVideoIdError",
    "NoPlayableFormatsError",
    "YinfoError",
    "app",
    "fetch_video_info",
    "get_settings",
    "search",
]
