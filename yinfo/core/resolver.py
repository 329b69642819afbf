"""
Turns raw Innertube responses into VideoInfo / SearchResult models.

Stream URLs are resolved one format at a time. A format whose signature
cannot be deciphered is dropped on its own; the rest of the response is
still returned. Only when nothing is left does resolution fail.
"""

import logging
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

from ..config import get_settings
from ..errors import (
    CipherError,
    ExtractionFailedError,
    MalformedResponseError,
    NoPlayableFormatsError,
)
from ..models.enums import AudioQuality, FormatType
from ..models.innertube import RawInnertubeResponse
from ..models.response import SearchResult, StreamFormat, SubtitleTrack, Thumbnail, VideoInfo
from ..utils.helpers import (
    float_or_none,
    format_date,
    int_or_none,
    parse_count,
    parse_duration,
    str_or_none,
    text_of,
    traverse_obj,
    url_or_none,
)
from .cipher import CipherProgram
from .mime import parse_mime_type
from .player import PlayerScripts
from .sandbox import ScriptSandbox

logger = logging.getLogger(__name__)

# Fallback dimensions/codecs for common itags missing them in the response
_ITAG_MAP: dict[int, dict[str, Any]] = {
    18: {"container": "mp4", "width": 640, "height": 360, "vcodec": "avc1", "acodec": "mp4a"},
    22: {"container": "mp4", "width": 1280, "height": 720, "vcodec": "avc1", "acodec": "mp4a"},
    137: {"container": "mp4", "width": 1920, "height": 1080, "vcodec": "avc1"},
    248: {"container": "webm", "width": 1920, "height": 1080, "vcodec": "vp9"},
    399: {"container": "mp4", "width": 2560, "height": 1440, "vcodec": "av01"},
    140: {"container": "m4a", "acodec": "mp4a"},
    251: {"container": "webm", "acodec": "opus"},
}

_SEARCH_RENDERERS = ("videoRenderer", "videoWithContextRenderer", "compactVideoRenderer")

_SUBTITLE_FORMATS = ("vtt", "srv3", "json3")


def set_query_params(url: str, **values: str) -> str:
    """Return ``url`` with the given query parameters replaced or added."""
    parsed = urlparse(url)
    qs = parse_qs(parsed.query, keep_blank_values=True)
    for key, value in values.items():
        qs[key] = [value]
    return parsed._replace(query=urlencode(qs, doseq=True)).geturl()


class _ResolveState:
    """Per-call state: the player program (fetched once) and n-transform results."""

    def __init__(self, raw: RawInnertubeResponse):
        self.raw = raw
        self.program: CipherProgram | None = None
        self.program_error: CipherError | None = None
        self.n_cache: dict[str, str | None] = {}


class MetadataResolver:
    def __init__(
        self,
        players: PlayerScripts,
        sandbox: ScriptSandbox | None = None,
        decipher_n: bool | None = None,
    ):
        self.players = players
        self.sandbox = sandbox if sandbox is not None else players.cache.sandbox
        self.decipher_n = get_settings().decipher_n if decipher_n is None else decipher_n

    # ------------------------------------------------------------------
    # Video info
    # ------------------------------------------------------------------

    async def resolve(self, raw: RawInnertubeResponse) -> VideoInfo:
        payload = raw.payload
        details = payload.get("videoDetails") or {}
        video_id = details.get("videoId") or ""

        streaming = payload.get("streamingData") or {}
        candidates = list(streaming.get("formats") or []) + list(
            streaming.get("adaptiveFormats") or []
        )

        state = _ResolveState(raw)
        formats: list[StreamFormat] = []
        dropped = 0
        for fmt in candidates:
            itag = fmt.get("itag")
            try:
                stream = await self._resolve_format(fmt, state)
            except CipherError as e:
                dropped += 1
                logger.warning(
                    "Dropping format %s of %s (%s): %s", itag, video_id, raw.client_type.value, e
                )
                continue
            if stream is None:
                dropped += 1
                continue
            formats.append(stream)

        if not formats:
            raise NoPlayableFormatsError(video_id, dropped=dropped)

        return self._video_info(raw, formats)

    async def _program(self, state: _ResolveState) -> CipherProgram:
        if state.program is not None:
            return state.program
        if state.program_error is not None:
            raise state.program_error
        if not state.raw.player_url:
            state.program_error = ExtractionFailedError(
                "Ciphered stream in a response that was not tied to a player script"
            )
            raise state.program_error
        try:
            state.program = await self.players.program_for(state.raw.player_url)
        except CipherError as e:
            state.program_error = e
            raise
        return state.program

    async def _resolve_format(self, fmt: dict, state: _ResolveState) -> StreamFormat | None:
        """Resolve one format entry. Returns None for formats that are skipped outright."""
        itag = int_or_none(fmt.get("itag"))
        if itag is None:
            return None
        if fmt.get("drmFamilies"):
            logger.debug("Skipping DRM format %s", itag)
            return None

        url = fmt.get("url")
        if not url and fmt.get("signatureCipher"):
            sc = parse_qs(fmt["signatureCipher"])
            url = sc.get("url", [None])[0]
            ciphered = sc.get("s", [None])[0]
            sp = sc.get("sp", ["signature"])[0]
            if not url or not ciphered:
                return None
            program = await self._program(state)
            signature = program.apply(ciphered, state.raw.player_version)
            url = set_query_params(url, **{sp: signature})

        if not url:
            return None

        url = await self._transform_n(url, state)
        return self._stream_format(fmt, itag, url)

    async def _transform_n(self, url: str, state: _ResolveState) -> str:
        """Best-effort n-parameter transform. Any failure keeps the original value."""
        if not self.decipher_n or not state.raw.player_url:
            return url
        n = parse_qs(urlparse(url).query).get("n", [None])[0]
        if not n:
            return url

        if n not in state.n_cache:
            try:
                program = await self._program(state)
                state.n_cache[n] = await self.sandbox.transform_n_async(program, n)
            except CipherError as e:
                logger.debug("n transform failed for %s: %s", n, e)
                state.n_cache[n] = None

        transformed = state.n_cache[n]
        return set_query_params(url, n=transformed) if transformed else url

    @staticmethod
    def _stream_format(fmt: dict, itag: int, url: str) -> StreamFormat:
        mime = parse_mime_type(fmt.get("mimeType"))
        itag_info = _ITAG_MAP.get(itag, {})

        vcodec = (mime.vcodec if mime else None) or itag_info.get("vcodec")
        acodec = (mime.acodec if mime else None) or itag_info.get("acodec")
        container = (mime.ext if mime else None) or itag_info.get("container")

        has_video = bool(vcodec) and vcodec != "none"
        has_audio = bool(acodec) and acodec != "none"
        if has_video and not has_audio:
            format_type = FormatType.VIDEO_ONLY
        elif has_audio and not has_video:
            format_type = FormatType.AUDIO_ONLY
        else:
            format_type = FormatType.COMBINED

        try:
            audio_quality = AudioQuality(fmt["audioQuality"]) if fmt.get("audioQuality") else None
        except ValueError:
            audio_quality = None

        return StreamFormat(
            itag=itag,
            url=url,
            mime_type=fmt.get("mimeType"),
            container=container,
            vcodec=vcodec,
            acodec=acodec,
            format_type=format_type,
            bitrate=int_or_none(fmt.get("bitrate")),
            average_bitrate=int_or_none(fmt.get("averageBitrate")),
            width=int_or_none(fmt.get("width")) or itag_info.get("width"),
            height=int_or_none(fmt.get("height")) or itag_info.get("height"),
            fps=float_or_none(fmt.get("fps")),
            quality=fmt.get("quality"),
            quality_label=fmt.get("qualityLabel"),
            audio_quality=audio_quality,
            audio_sample_rate=int_or_none(fmt.get("audioSampleRate")),
            audio_channels=int_or_none(fmt.get("audioChannels")),
            content_length=int_or_none(fmt.get("contentLength")),
            approx_duration_ms=int_or_none(fmt.get("approxDurationMs")),
        )

    def _video_info(
        self,
        raw: RawInnertubeResponse,
        formats: list[StreamFormat],
    ) -> VideoInfo:
        payload = raw.payload
        details = payload.get("videoDetails") or {}
        microformat = traverse_obj(payload, ("microformat", "playerMicroformatRenderer"), default={})

        age_restricted = microformat.get("isFamilySafe") is False or bool(
            traverse_obj(payload, ("playabilityStatus", "desktopLegacyAgeGateReason"))
        )

        return VideoInfo(
            video_id=details.get("videoId") or "",
            title=str_or_none(details.get("title")),
            author=str_or_none(details.get("author")),
            channel_id=str_or_none(details.get("channelId")),
            description=details.get("shortDescription") or None,
            duration=int_or_none(details.get("lengthSeconds")),
            view_count=int_or_none(details.get("viewCount")),
            keywords=list(details.get("keywords") or []),
            is_live=bool(details.get("isLive")),
            is_private=bool(details.get("isPrivate")),
            age_restricted=age_restricted,
            upload_date=format_date(microformat.get("publishDate") or microformat.get("uploadDate")),
            thumbnails=self._thumbnails(traverse_obj(details, ("thumbnail", "thumbnails"))),
            formats=formats,
            subtitles=self._subtitles(payload),
            client=raw.client_type,
            player_version=raw.player_version,
        )

    @staticmethod
    def _thumbnails(items: Any) -> list[Thumbnail]:
        thumbnails = []
        for item in items or []:
            url = url_or_none(item.get("url")) if isinstance(item, dict) else None
            if url:
                thumbnails.append(
                    Thumbnail(
                        url=url,
                        width=int_or_none(item.get("width")),
                        height=int_or_none(item.get("height")),
                    )
                )
        return thumbnails

    @staticmethod
    def _subtitles(payload: dict) -> dict[str, list[SubtitleTrack]]:
        """Caption tracks, one entry per downloadable format."""
        tracks = traverse_obj(
            payload, ("captions", "playerCaptionsTracklistRenderer", "captionTracks"), default=[]
        )
        subtitles: dict[str, list[SubtitleTrack]] = {}
        for track in tracks:
            base_url = url_or_none(track.get("baseUrl"))
            if not base_url:
                continue
            lang = track.get("languageCode", "und")
            lang_name = text_of(track.get("name"))
            is_asr = track.get("kind") == "asr"
            for ext in _SUBTITLE_FORMATS:
                subtitles.setdefault(lang, []).append(
                    SubtitleTrack(
                        url=set_query_params(base_url, fmt=ext),
                        lang=lang,
                        lang_name=lang_name,
                        ext=ext,
                        is_auto_generated=is_asr,
                    )
                )
        return subtitles

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def resolve_search(self, raw: RawInnertubeResponse) -> list[SearchResult]:
        if "contents" not in raw.payload:
            raise MalformedResponseError(
                "Search response has no contents", client=raw.client_type.value
            )

        results: list[SearchResult] = []
        seen: set[str] = set()
        for renderer in _walk_renderers(raw.payload["contents"]):
            result = self._search_result(renderer)
            if result is not None and result.video_id not in seen:
                seen.add(result.video_id)
                results.append(result)
        return results

    def _search_result(self, renderer: dict) -> SearchResult | None:
        video_id = renderer.get("videoId")
        if not isinstance(video_id, str) or not video_id:
            return None

        owner = (
            renderer.get("ownerText")
            or renderer.get("longBylineText")
            or renderer.get("shortBylineText")
        )
        description = text_of(
            traverse_obj(renderer, ("detailedMetadataSnippets", 0, "snippetText"))
        ) or text_of(renderer.get("descriptionSnippet"))

        return SearchResult(
            video_id=video_id,
            title=text_of(renderer.get("title")) or text_of(renderer.get("headline")),
            channel=text_of(owner),
            channel_id=traverse_obj(
                owner, ("runs", 0, "navigationEndpoint", "browseEndpoint", "browseId")
            ),
            duration=parse_duration(text_of(renderer.get("lengthText"))),
            view_count=parse_count(text_of(renderer.get("viewCountText"))),
            published=text_of(renderer.get("publishedTimeText")),
            description=description,
            thumbnails=self._thumbnails(traverse_obj(renderer, ("thumbnail", "thumbnails"))),
        )


def _walk_renderers(node: Any):
    """Yield video renderers in document order."""
    if isinstance(node, dict):
        for key, value in node.items():
            if key in _SEARCH_RENDERERS and isinstance(value, dict):
                yield value
            else:
                yield from _walk_renderers(value)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_renderers(item)
