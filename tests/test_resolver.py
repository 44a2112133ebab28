import pytest

from src.core.dto.media import MediaReference, SourceKind
from src.media.resolver import classify, format_duration, kind_label


class TestClassify:
    def test_youtube_short_link(self):
        ref = classify("https://youtu.be/dQw4w9WgXcQ")
        assert ref.source_kind is SourceKind.YOUTUBE
        assert ref.provider_id == "dQw4w9WgXcQ"
        assert ref.embed_url.startswith("https://www.youtube.com/embed/dQw4w9WgXcQ?")
        assert "enablejsapi=1" in ref.embed_url

    @pytest.mark.parametrize("url", [
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "https://www.youtube.com/v/dQw4w9WgXcQ?version=3",
        "https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
    ])
    def test_youtube_url_shapes(self, url):
        ref = classify(url)
        assert ref.source_kind is SourceKind.YOUTUBE
        assert ref.provider_id == "dQw4w9WgXcQ"

    def test_youtube_embed_carries_origin(self):
        ref = classify("https://youtu.be/dQw4w9WgXcQ", origin="https://lectures.example.org")
        assert ref.embed_url.endswith("origin=https://lectures.example.org")

    def test_youtube_id_of_wrong_length_falls_through(self):
        ref = classify("https://youtu.be/abc123")
        assert ref.source_kind is SourceKind.FALLBACK
        assert ref.provider_id is None

    def test_short_youtube_id_can_still_be_a_direct_file(self):
        ref = classify("https://youtu.be/clip.mp4")
        assert ref.source_kind is SourceKind.DIRECT_FILE

    def test_vimeo(self):
        ref = classify("https://vimeo.com/76979871")
        assert ref.source_kind is SourceKind.VIMEO
        assert ref.provider_id == "76979871"
        assert ref.embed_url == "https://player.vimeo.com/video/76979871"

    def test_vimeo_channel_link(self):
        ref = classify("https://vimeo.com/channels/staffpicks/76979871")
        assert ref.source_kind is SourceKind.VIMEO
        assert ref.provider_id == "76979871"

    def test_hls_with_query(self):
        ref = classify("https://cdn.example.com/stream/master.m3u8?token=abc")
        assert ref.source_kind is SourceKind.HLS
        assert ref.embed_url is None
        assert ref.provider_id is None

    def test_hls_extension_is_case_insensitive(self):
        assert classify("https://cdn.example.com/LIVE.M3U8").source_kind is SourceKind.HLS

    @pytest.mark.parametrize("url", [
        "https://cdn.example.com/lesson1.mp4",
        "https://cdn.example.com/lesson1.webm?sig=1",
        "https://cdn.example.com/lesson1.MKV",
        "file:///home/user/lesson.mov",
    ])
    def test_direct_files(self, url):
        assert classify(url).source_kind is SourceKind.DIRECT_FILE

    def test_fallback(self):
        ref = classify("not a url at all")
        assert ref.source_kind is SourceKind.FALLBACK
        assert ref.embed_url == "not a url at all"
        assert ref.is_embed
        assert not ref.is_empty

    @pytest.mark.parametrize("url", ["", None])
    def test_empty_input_is_placeholder(self, url):
        ref = classify(url)
        assert ref.source_kind is SourceKind.FALLBACK
        assert ref.url == ""
        assert ref.embed_url is None
        assert ref.is_empty
        assert not ref.is_embed

    def test_youtube_wins_over_hls(self):
        ref = classify("https://www.youtube.com/watch?v=dQw4w9WgXcQ&list=stream.m3u8")
        assert ref.source_kind is SourceKind.YOUTUBE

    def test_hls_wins_over_direct_file(self):
        ref = classify("https://cdn.example.com/video.mp4/index.m3u8")
        assert ref.source_kind is SourceKind.HLS

    def test_classify_is_idempotent(self):
        url = "https://cdn.example.com/stream/master.m3u8?token=abc"
        assert classify(url) == classify(url)

    def test_reference_is_immutable(self):
        ref = classify("https://vimeo.com/76979871")
        with pytest.raises(AttributeError):
            ref.url = "https://example.com"

    def test_provider_id_only_for_providers(self):
        for url in ("https://cdn.example.com/a.mp4", "https://cdn.example.com/a.m3u8", "x"):
            assert classify(url).provider_id is None


class TestLabels:
    def test_kind_labels(self):
        assert kind_label(SourceKind.YOUTUBE) == "YouTube Video"
        assert kind_label(SourceKind.HLS) == "HLS Live Stream"
        assert kind_label(SourceKind.FALLBACK, "https://x") == "External Video Link"
        assert kind_label(SourceKind.FALLBACK, "") == ""

    def test_reference_label(self):
        assert MediaReference("https://a/b.mp4", SourceKind.DIRECT_FILE).label == "Direct Video"


class TestFormatDuration:
    @pytest.mark.parametrize("seconds,expected", [
        (0, "0:00"),
        (59, "0:59"),
        (61, "1:01"),
        (3600, "1:00:00"),
        (3725, "1:02:05"),
        ("90", "1:30"),
    ])
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected

    @pytest.mark.parametrize("value", [None, "abc", -5])
    def test_invalid(self, value):
        assert format_duration(value) == ""
