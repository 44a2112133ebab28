"""
Media source resolution.

Maps an arbitrary lecture URL onto exactly one playback strategy. The
rules are checked in a fixed order and the first match wins:

1. YouTube (11 character video id)
2. Vimeo (numeric id)
3. HLS manifest (``.m3u8``)
4. Direct media file
5. Fallback embed, or an empty placeholder for an empty URL

Resolution is pure: no network access and no shared state, so calling
``classify`` twice on the same input yields equal references.
"""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import quote

from src.core.dto.media import MediaReference, SourceKind

DEFAULT_ORIGIN = "https://localhost"

YOUTUBE_ID_LENGTH = 11

_YOUTUBE_RE = re.compile(r"^.*(youtu.be/|v/|u/\w/|embed/|watch\?v=|&v=)([^#&?]*).*")
_VIMEO_RE = re.compile(r"vimeo\.com.*(?:videos|video|channels|)/(\d+)", re.IGNORECASE)
_HLS_RE = re.compile(r"\.m3u8(\?.*)?$", re.IGNORECASE)
_DIRECT_RE = re.compile(r"\.(mp4|webm|ogg|mov|avi|wmv|flv|mkv)(\?.*)?$", re.IGNORECASE)

YOUTUBE_EMBED = "https://www.youtube.com/embed/{id}?enablejsapi=1&origin={origin}"
VIMEO_EMBED = "https://player.vimeo.com/video/{id}"

_KIND_LABELS = {
    SourceKind.YOUTUBE: "YouTube Video",
    SourceKind.VIMEO: "Vimeo Video",
    SourceKind.HLS: "HLS Live Stream",
    SourceKind.DIRECT_FILE: "Direct Video",
    SourceKind.FALLBACK: "External Video Link",
}


def youtube_video_id(url: str) -> Optional[str]:
    match = _YOUTUBE_RE.match(url)
    if match is None:
        return None
    candidate = match.group(2)
    # A captured id of the wrong length is not a YouTube video
    if len(candidate) != YOUTUBE_ID_LENGTH:
        return None
    return candidate


def vimeo_video_id(url: str) -> Optional[str]:
    match = _VIMEO_RE.search(url)
    return match.group(1) if match else None


def is_hls_url(url: str) -> bool:
    return _HLS_RE.search(url) is not None


def is_direct_video_url(url: str) -> bool:
    return _DIRECT_RE.search(url) is not None


def classify(url: Optional[str], origin: str = DEFAULT_ORIGIN) -> MediaReference:
    """
    Resolve a media URL into a MediaReference.

    Args:
        url: Raw URL as entered by an admin. ``None`` is treated as empty.
        origin: Origin of the page hosting the player. Passed to YouTube
                so referrer restrictions can be applied.

    Returns:
        A MediaReference. Never raises.
    """
    url = url or ""

    video_id = youtube_video_id(url)
    if video_id:
        return MediaReference(
            url=url,
            source_kind=SourceKind.YOUTUBE,
            embed_url=YOUTUBE_EMBED.format(id=video_id, origin=quote(origin, safe=":/")),
            provider_id=video_id,
        )

    vimeo_id = vimeo_video_id(url)
    if vimeo_id:
        return MediaReference(
            url=url,
            source_kind=SourceKind.VIMEO,
            embed_url=VIMEO_EMBED.format(id=vimeo_id),
            provider_id=vimeo_id,
        )

    if is_hls_url(url):
        return MediaReference(url=url, source_kind=SourceKind.HLS)

    if is_direct_video_url(url):
        return MediaReference(url=url, source_kind=SourceKind.DIRECT_FILE)

    # Best-effort generic embed; an empty url renders a placeholder instead
    return MediaReference(
        url=url,
        source_kind=SourceKind.FALLBACK,
        embed_url=url or None,
    )


def kind_label(kind: SourceKind, url: str = "") -> str:
    if kind is SourceKind.FALLBACK and not url:
        return ""
    return _KIND_LABELS[kind]


def format_duration(seconds) -> str:
    """Format a duration in seconds as m:ss or h:mm:ss."""
    try:
        sec = int(seconds)
    except (TypeError, ValueError):
        return ""
    if sec < 0:
        return ""
    h, rem = divmod(sec, 3600)
    m, s = divmod(rem, 60)
    return f"{h}:{m:02d}:{s:02d}" if h else f"{m}:{s:02d}"
