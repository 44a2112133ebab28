"""
HLS playlist parsing.

Understands the subset of RFC 8216 the relay needs: master playlists with
variant streams, and media playlists with segments, an optional init
section (EXT-X-MAP) and encryption markers (EXT-X-KEY).
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin

_ATTR_RE = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')


class PlaylistError(ValueError):
    """Raised when a playlist cannot be parsed."""


@dataclass(frozen=True)
class Variant:
    uri: str
    bandwidth: Optional[int] = None
    resolution: Optional[str] = None
    codecs: Optional[str] = None


@dataclass(frozen=True)
class Segment:
    uri: str
    duration: float
    sequence: int


@dataclass
class MasterPlaylist:
    url: str
    variants: List[Variant] = field(default_factory=list)


@dataclass
class MediaPlaylist:
    url: str
    target_duration: float = 0.0
    media_sequence: int = 0
    segments: List[Segment] = field(default_factory=list)
    ended: bool = False
    init_uri: Optional[str] = None
    key_method: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return not self.ended

    @property
    def is_encrypted(self) -> bool:
        return bool(self.key_method) and self.key_method.upper() != "NONE"

    @property
    def total_duration(self) -> float:
        return sum(s.duration for s in self.segments)


def parse_attributes(text: str) -> dict[str, str]:
    return {key: value.strip('"') for key, value in _ATTR_RE.findall(text)}


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def parse_playlist(text: str, url: str) -> MasterPlaylist | MediaPlaylist:
    """
    Parse playlist text fetched from ``url``.

    Returns a MasterPlaylist when the text lists variant streams, a
    MediaPlaylist otherwise. Relative URIs are resolved against ``url``.
    """
    if text is None:
        raise PlaylistError("Empty playlist")
    lines = [line.strip() for line in text.lstrip("\ufeff").splitlines()]
    lines = [line for line in lines if line]
    if not lines or not lines[0].startswith("#EXTM3U"):
        raise PlaylistError("Missing #EXTM3U header")

    if any(line.startswith("#EXT-X-STREAM-INF") for line in lines):
        return _parse_master(lines, url)
    return _parse_media(lines, url)


def _parse_master(lines: List[str], url: str) -> MasterPlaylist:
    playlist = MasterPlaylist(url=url)
    pending: Optional[dict[str, str]] = None
    for line in lines[1:]:
        if line.startswith("#EXT-X-STREAM-INF:"):
            pending = parse_attributes(line.split(":", 1)[1])
            continue
        if line.startswith("#"):
            continue
        if pending is not None:
            bandwidth = _parse_int(pending.get("AVERAGE-BANDWIDTH") or pending.get("BANDWIDTH"))
            playlist.variants.append(
                Variant(
                    uri=urljoin(url, line),
                    bandwidth=bandwidth,
                    resolution=pending.get("RESOLUTION"),
                    codecs=pending.get("CODECS"),
                )
            )
            pending = None
    if not playlist.variants:
        raise PlaylistError("Master playlist has no variant streams")
    return playlist


def _parse_media(lines: List[str], url: str) -> MediaPlaylist:
    playlist = MediaPlaylist(url=url)
    duration: Optional[float] = None
    sequence: Optional[int] = None
    for line in lines[1:]:
        if line.startswith("#EXT-X-TARGETDURATION:"):
            try:
                playlist.target_duration = float(line.split(":", 1)[1])
            except ValueError:
                raise PlaylistError(f"Bad target duration: {line}")
        elif line.startswith("#EXT-X-MEDIA-SEQUENCE:"):
            seq = _parse_int(line.split(":", 1)[1])
            if seq is None:
                raise PlaylistError(f"Bad media sequence: {line}")
            playlist.media_sequence = seq
        elif line.startswith("#EXTINF:"):
            value = line.split(":", 1)[1].split(",", 1)[0]
            try:
                duration = float(value)
            except ValueError:
                raise PlaylistError(f"Bad segment duration: {line}")
        elif line.startswith("#EXT-X-ENDLIST"):
            playlist.ended = True
        elif line.startswith("#EXT-X-MAP:"):
            attrs = parse_attributes(line.split(":", 1)[1])
            if attrs.get("URI"):
                playlist.init_uri = urljoin(url, attrs["URI"])
        elif line.startswith("#EXT-X-KEY:"):
            attrs = parse_attributes(line.split(":", 1)[1])
            method = attrs.get("METHOD")
            # A later METHOD=NONE does not clear an earlier encrypted range
            if method and (not playlist.is_encrypted or method.upper() != "NONE"):
                playlist.key_method = method
        elif line.startswith("#"):
            continue
        else:
            if duration is None:
                raise PlaylistError(f"Segment without #EXTINF: {line}")
            if sequence is None:
                sequence = playlist.media_sequence
            playlist.segments.append(Segment(uri=urljoin(url, line), duration=duration, sequence=sequence))
            sequence += 1
            duration = None

    if not playlist.target_duration and playlist.segments:
        playlist.target_duration = max(s.duration for s in playlist.segments)
    return playlist


def select_variant(variants: List[Variant], max_bandwidth: Optional[int] = None) -> Optional[Variant]:
    """
    Choose a variant stream.

    Highest bandwidth within ``max_bandwidth`` wins; without a cap the
    highest bandwidth overall. If nothing fits the cap, fall back to the
    lowest bandwidth, and to the first variant when none advertise one.
    """
    if not variants:
        return None
    with_bandwidth = [v for v in variants if v.bandwidth]
    if not with_bandwidth:
        return variants[0]
    if max_bandwidth is None:
        return max(with_bandwidth, key=lambda v: v.bandwidth)
    eligible = [v for v in with_bandwidth if v.bandwidth <= max_bandwidth]
    if eligible:
        return max(eligible, key=lambda v: v.bandwidth)
    return min(with_bandwidth, key=lambda v: v.bandwidth)


def live_start_index(playlist: MediaPlaylist, low_latency: bool) -> int:
    """Index of the first segment to play."""
    if not playlist.is_live:
        return 0
    count = len(playlist.segments)
    back = 1 if low_latency else 3
    return max(0, count - back)
