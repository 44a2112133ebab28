import asyncio
import threading
import time

import pytest
import requests

from src.core.hls.relay import FetchError, HlsRelayDecoder, SegmentWindow
from src.core.playback import DecoderConfig, DecoderEvent, PlaybackError

BASE = "https://cdn.example.com/course/"

VOD = """#EXTM3U
#EXT-X-TARGETDURATION:6
#EXT-X-MEDIA-SEQUENCE:0
#EXTINF:6.0,
seg0.ts
#EXTINF:6.0,
seg1.ts
#EXTINF:6.0,
seg2.ts
#EXT-X-ENDLIST
"""

LIVE_FIRST = """#EXTM3U
#EXT-X-TARGETDURATION:1
#EXT-X-MEDIA-SEQUENCE:0
#EXTINF:1.0,
seg0.ts
#EXTINF:1.0,
seg1.ts
"""

LIVE_SECOND = """#EXTM3U
#EXT-X-TARGETDURATION:1
#EXT-X-MEDIA-SEQUENCE:1
#EXTINF:1.0,
seg1.ts
#EXTINF:1.0,
seg2.ts
#EXT-X-ENDLIST
"""

MASTER = """#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=800000
low.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=2800000
high.m3u8
"""


class FakeFetcher:
    def __init__(self, resources):
        self.resources = resources
        self.requested = []
        self.opened = False
        self.closed = False

    async def open(self):
        self.opened = True

    async def get_text(self, url):
        return self._get(url)

    async def get_bytes(self, url):
        return self._get(url)

    def _get(self, url):
        self.requested.append(url)
        if url not in self.resources:
            raise FetchError(f"HTTP 404 for {url}")
        value = self.resources[url]
        if isinstance(value, list):
            # Successive playlist reloads; the last one repeats
            return value.pop(0) if len(value) > 1 else value[0]
        return value

    async def close(self):
        self.closed = True


class FakeElement:
    def __init__(self):
        self.source = None

    def set_source(self, url):
        self.source = url


def vod_resources(playlist=VOD):
    return {
        BASE + "index.m3u8": playlist,
        BASE + "seg0.ts": b"AAAA",
        BASE + "seg1.ts": b"BBBB",
        BASE + "seg2.ts": b"CCCC",
    }


@pytest.fixture
def relays():
    created = []
    yield created
    for relay in created:
        relay.destroy()


def make_relay(relays, fetcher, **config):
    relay = HlsRelayDecoder(
        DecoderConfig(**config),
        fetcher_factory=lambda: fetcher,
        retry_delay=0.01,
    )
    relays.append(relay)
    return relay


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


def wait_for(relay, event):
    received = []
    done = threading.Event()

    def callback(*args):
        received.append(args)
        done.set()
    relay.on(event, callback)
    return received, done


class TestSegmentWindow:
    def test_delivery_order(self):
        window = SegmentWindow(back_buffer_seconds=100)
        for seq in range(3):
            window.append(seq, 2.0, b"x")
        first = window.next_from(None)
        assert first.sequence == 0
        window.mark_delivered(0)
        assert window.next_from(1).sequence == 1
        # Delivered segments stay readable from the start of the window
        assert window.next_from(None).sequence == 0
        assert window.next_from(2).sequence == 2
        assert window.next_from(3) is None

    def test_duplicates_and_regressions_are_ignored(self):
        window = SegmentWindow(back_buffer_seconds=10)
        window.append(5, 1.0, b"a")
        window.append(5, 1.0, b"b")
        window.append(4, 1.0, b"c")
        assert window.sequences == [5]

    def test_back_buffer_eviction(self):
        window = SegmentWindow(back_buffer_seconds=5)
        for seq in range(6):
            window.append(seq, 2.0, b"x")
        for seq in range(4):
            window.mark_delivered(seq)
        # Two delivered segments fit the 5 second budget
        assert window.sequences == [2, 3, 4, 5]
        assert window.behind_seconds == 4.0
        assert window.ahead_seconds == 4.0

    def test_zero_back_buffer(self):
        window = SegmentWindow(back_buffer_seconds=0)
        window.append(0, 2.0, b"x")
        window.append(1, 2.0, b"y")
        window.mark_delivered(0)
        assert window.sequences == [1]


class TestHlsRelayDecoder:
    def test_streams_vod_playlist(self, relays):
        fetcher = FakeFetcher(vod_resources())
        relay = make_relay(relays, fetcher)
        manifests, parsed = wait_for(relay, DecoderEvent.MANIFEST_PARSED)
        element = FakeElement()

        relay.load_source(BASE + "index.m3u8")
        relay.attach_media(element)

        assert element.source == relay.stream_url
        assert element.source.startswith("http://127.0.0.1:")
        assert parsed.wait(5)
        info = manifests[0][0]
        assert info["live"] is False
        assert info["segments"] == 3

        resp = requests.get(relay.stream_url, timeout=10)
        assert resp.status_code == 200
        assert resp.content == b"AAAABBBBCCCC"

    def test_init_section_is_sent_first(self, relays):
        playlist = VOD.replace("#EXTINF:6.0,\nseg0.ts", '#EXT-X-MAP:URI="init.mp4"\n#EXTINF:6.0,\nseg0.ts')
        resources = vod_resources(playlist)
        resources[BASE + "init.mp4"] = b"INIT"
        relay = make_relay(relays, FakeFetcher(resources))
        relay.load_source(BASE + "index.m3u8")
        relay.attach_media(FakeElement())
        resp = requests.get(relay.stream_url, timeout=10)
        assert resp.content == b"INITAAAABBBBCCCC"

    def test_master_playlist_selects_variant(self, relays):
        resources = vod_resources()
        resources[BASE + "master.m3u8"] = MASTER
        resources[BASE + "high.m3u8"] = VOD
        fetcher = FakeFetcher(resources)
        relay = make_relay(relays, fetcher, max_bandwidth=None)
        _, parsed = wait_for(relay, DecoderEvent.MANIFEST_PARSED)
        relay.load_source(BASE + "master.m3u8")
        assert parsed.wait(5)
        assert BASE + "high.m3u8" in fetcher.requested
        assert BASE + "low.m3u8" not in fetcher.requested

    def test_bandwidth_cap(self, relays):
        resources = vod_resources()
        resources[BASE + "master.m3u8"] = MASTER
        resources[BASE + "low.m3u8"] = VOD
        fetcher = FakeFetcher(resources)
        relay = make_relay(relays, fetcher, max_bandwidth=1_000_000)
        _, parsed = wait_for(relay, DecoderEvent.MANIFEST_PARSED)
        relay.load_source(BASE + "master.m3u8")
        assert parsed.wait(5)
        assert BASE + "low.m3u8" in fetcher.requested

    def test_network_error_after_retries(self, relays):
        fetcher = FakeFetcher({})
        relay = make_relay(relays, fetcher, max_retries=2)
        errors, failed = wait_for(relay, DecoderEvent.ERROR)
        relay.load_source(BASE + "missing.m3u8")
        assert failed.wait(5)
        error = errors[0][0]
        assert isinstance(error, PlaybackError)
        assert error.fatal
        assert "HTTP 404" in error.details
        assert fetcher.requested.count(BASE + "missing.m3u8") == 3

    def test_malformed_playlist(self, relays):
        relay = make_relay(relays, FakeFetcher({BASE + "index.m3u8": "garbage"}))
        errors, failed = wait_for(relay, DecoderEvent.ERROR)
        relay.load_source(BASE + "index.m3u8")
        assert failed.wait(5)
        assert errors[0][0].message == "Malformed HLS playlist"

    def test_encrypted_stream_is_refused(self, relays):
        playlist = VOD.replace("#EXTINF:6.0,\nseg0.ts", '#EXT-X-KEY:METHOD=AES-128,URI="k"\n#EXTINF:6.0,\nseg0.ts')
        relay = make_relay(relays, FakeFetcher(vod_resources(playlist)))
        errors, failed = wait_for(relay, DecoderEvent.ERROR)
        relay.load_source(BASE + "index.m3u8")
        assert failed.wait(5)
        assert errors[0][0].fatal
        assert "Encrypted" in errors[0][0].message

    def test_events_go_through_dispatch(self, relays):
        dispatched = []
        done = threading.Event()

        def dispatch(fn, *args):
            dispatched.append(args)
            fn(*args)
            done.set()

        relay = HlsRelayDecoder(
            DecoderConfig(),
            fetcher_factory=lambda: FakeFetcher(vod_resources()),
            dispatch=dispatch,
        )
        relays.append(relay)
        relay.on(DecoderEvent.MANIFEST_PARSED, lambda info: None)
        relay.load_source(BASE + "index.m3u8")
        assert done.wait(5)
        assert dispatched[0][0]["segments"] == 3

    def test_destroy_closes_fetcher_and_silences_callbacks(self, relays):
        fetcher = FakeFetcher({})
        relay = make_relay(relays, fetcher, max_retries=0)
        queued = []
        relay._dispatch = lambda fn, *args: queued.append((fn, args))
        relay.on(DecoderEvent.ERROR, lambda *args: pytest.fail("callback after destroy"))
        relay.load_source(BASE + "missing.m3u8")
        relay.destroy()

        assert relay.is_destroyed
        assert fetcher.closed
        # Anything dispatched before destroy is a no-op when it finally runs
        for fn, args in queued:
            fn(*args)

    def test_destroy_is_idempotent(self, relays):
        relay = make_relay(relays, FakeFetcher({}))
        relay.destroy()
        relay.destroy()
        assert relay.is_destroyed

    def test_destroyed_relay_refuses_work(self, relays):
        relay = make_relay(relays, FakeFetcher({}))
        relay.destroy()
        with pytest.raises(RuntimeError):
            relay.load_source(BASE + "index.m3u8")
        with pytest.raises(RuntimeError):
            relay.attach_media(FakeElement())

    def test_single_source_per_instance(self, relays):
        relay = make_relay(relays, FakeFetcher(vod_resources()))
        relay.load_source(BASE + "index.m3u8")
        with pytest.raises(RuntimeError):
            relay.load_source(BASE + "other.m3u8")

    def test_unknown_stream_token(self, relays):
        relay = make_relay(relays, FakeFetcher(vod_resources()))
        relay.load_source(BASE + "index.m3u8")
        bad = relay.stream_url.rsplit("/", 1)[0] + "/deadbeef.ts"
        assert requests.get(bad, timeout=10).status_code == 404

    def test_reconnect_replays_back_buffer(self, relays):
        relay = make_relay(relays, FakeFetcher(vod_resources()), back_buffer_seconds=90)
        relay.load_source(BASE + "index.m3u8")
        relay.attach_media(FakeElement())

        assert requests.get(relay.stream_url, timeout=10).content == b"AAAABBBBCCCC"
        # The media element reconnects after a seek back
        assert requests.get(relay.stream_url, timeout=10).content == b"AAAABBBBCCCC"

    def test_reconnect_without_back_buffer_is_empty(self, relays):
        relay = make_relay(relays, FakeFetcher(vod_resources()), back_buffer_seconds=0)
        relay.load_source(BASE + "index.m3u8")
        relay.attach_media(FakeElement())

        assert requests.get(relay.stream_url, timeout=10).content == b"AAAABBBBCCCC"
        assert requests.get(relay.stream_url, timeout=10).content == b""


class TestLiveAndBuffering:
    def test_live_playlist_is_reloaded(self, relays):
        resources = vod_resources()
        resources[BASE + "index.m3u8"] = [LIVE_FIRST, LIVE_SECOND]
        fetcher = FakeFetcher(resources)
        relay = make_relay(relays, fetcher, low_latency=True)
        manifests, parsed = wait_for(relay, DecoderEvent.MANIFEST_PARSED)
        relay.load_source(BASE + "index.m3u8")
        relay.attach_media(FakeElement())

        assert parsed.wait(5)
        assert manifests[0][0]["live"] is True
        # Low latency starts at the live edge, then picks up seg2 from the reload
        assert requests.get(relay.stream_url, timeout=10).content == b"BBBBCCCC"
        assert fetcher.requested.count(BASE + "index.m3u8") == 2
        assert BASE + "seg0.ts" not in fetcher.requested

    def test_forward_buffer_limits_prefetch(self, relays):
        fetcher = FakeFetcher(vod_resources())
        relay = make_relay(relays, fetcher, max_buffer_seconds=6)
        relay.load_source(BASE + "index.m3u8")
        relay.attach_media(FakeElement())

        assert wait_until(lambda: BASE + "seg0.ts" in fetcher.requested)
        time.sleep(0.3)
        assert BASE + "seg1.ts" not in fetcher.requested

        # Reading frees room, so the rest of the stream follows
        assert requests.get(relay.stream_url, timeout=10).content == b"AAAABBBBCCCC"
        assert BASE + "seg2.ts" in fetcher.requested

    @pytest.mark.parametrize("enable_worker", [True, False])
    def test_playlist_parse_thread(self, relays, monkeypatch, enable_worker):
        offloaded = []
        to_thread = asyncio.to_thread

        async def tracking_to_thread(func, *args, **kwargs):
            offloaded.append(func.__name__)
            return await to_thread(func, *args, **kwargs)

        monkeypatch.setattr(asyncio, "to_thread", tracking_to_thread)
        relay = make_relay(relays, FakeFetcher(vod_resources()), enable_worker=enable_worker)
        _, parsed = wait_for(relay, DecoderEvent.MANIFEST_PARSED)
        relay.load_source(BASE + "index.m3u8")
        relay.attach_media(FakeElement())

        assert parsed.wait(5)
        assert requests.get(relay.stream_url, timeout=10).content == b"AAAABBBBCCCC"
        assert ("parse_playlist" in offloaded) is enable_worker
