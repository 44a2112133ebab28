from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SourceKind(str, Enum):
    YOUTUBE = "youtube"
    VIMEO = "vimeo"
    HLS = "hls"
    DIRECT_FILE = "direct"
    FALLBACK = "custom"


@dataclass(frozen=True, slots=True)
class MediaReference:
    url: str                            # admin-entered, untrusted
    source_kind: SourceKind
    embed_url: Optional[str] = None     # iframe kinds only
    provider_id: Optional[str] = None   # youtube / vimeo only

    @property
    def is_empty(self) -> bool:
        return self.source_kind is SourceKind.FALLBACK and not self.url

    @property
    def is_embed(self) -> bool:
        if self.source_kind in (SourceKind.YOUTUBE, SourceKind.VIMEO):
            return True
        return self.source_kind is SourceKind.FALLBACK and bool(self.url)

    @property
    def label(self) -> str:
        from src.media.resolver import kind_label
        return kind_label(self.source_kind, self.url)
