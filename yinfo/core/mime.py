"""
Stream mime type parsing and codec ranking.

``video/mp4; codecs="avc1.4d401e, mp4a.40.2"`` is split into the media
kind, the container and the codec list. Codec ranks order streams of
equal resolution/bitrate when picking a "best" format.
"""

import re

_MIME_RE = re.compile(r'^(video|audio)/([\w.+-]+)(?:;\s*codecs="([^"]*)")?')

# Higher is preferred
_VCODEC_RANK = {"avc1": 1, "av01": 2, "vp9": 3, "vp09": 3}
_ACODEC_RANK = {"mp4a": 1, "mp4a.40.2": 2, "vorbis": 3, "opus": 4}


class MimeType:
    """Parsed stream mime type."""

    def __init__(self, kind: str, container: str, codecs: list[str]):
        self.kind = kind
        self.container = container
        self.codecs = codecs

    @property
    def vcodec(self) -> str | None:
        if self.kind == "audio":
            return "none"
        return self.codecs[0] if self.codecs else None

    @property
    def acodec(self) -> str | None:
        if self.kind == "audio":
            return self.codecs[0] if self.codecs else None
        return self.codecs[1] if len(self.codecs) > 1 else "none"

    @property
    def ext(self) -> str:
        if self.kind == "audio" and self.container == "mp4":
            return "m4a"
        return self.container

    def __repr__(self):
        return f"MimeType({self.kind}/{self.container}, codecs={self.codecs})"


def parse_mime_type(mime_type: str | None) -> MimeType | None:
    if not mime_type:
        return None
    match = _MIME_RE.match(mime_type.strip())
    if not match:
        return None
    kind, container, codecs = match.groups()
    codec_list = [c.strip() for c in (codecs or "").split(",") if c.strip()]
    return MimeType(kind, container, codec_list)


def vcodec_rank(vcodec: str | None) -> int:
    if not vcodec or vcodec == "none":
        return 0
    return _VCODEC_RANK.get(vcodec.split(".")[0], 0)


def acodec_rank(acodec: str | None) -> int:
    if not acodec or acodec == "none":
        return 0
    if acodec in _ACODEC_RANK:
        return _ACODEC_RANK[acodec]
    return _ACODEC_RANK.get(acodec.split(".")[0], 0)
