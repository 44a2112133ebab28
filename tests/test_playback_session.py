import pytest

from src.core.dto.media import SourceKind
from src.core.playback import (
    DecoderConfig,
    DecoderEvent,
    FullscreenError,
    NO_MEDIA_MESSAGE,
    PlaybackError,
    PlaybackSession,
    RenderMode,
    SessionClosedError,
    SessionState,
    VIMEO_ALLOW,
    YOUTUBE_ALLOW,
    plan_for,
)
from src.media.resolver import classify

HLS_A = "https://cdn.example.com/a/master.m3u8"
HLS_B = "https://cdn.example.com/b/master.m3u8"


class DecoderLog:
    """Shared record of decoder lifecycles, in order."""

    def __init__(self):
        self.events = []
        self.live = 0
        self.max_live = 0

    def attached(self, decoder):
        self.live += 1
        self.max_live = max(self.max_live, self.live)
        self.events.append(("attached", decoder.url))

    def released(self, decoder):
        self.live -= 1
        self.events.append(("released", decoder.url))


class FakeDecoder:
    def __init__(self, log, config, fail_on_load=False):
        self.log = log
        self.config = config
        self.url = None
        self.callbacks = {}
        self.destroyed = False
        self.fail_on_load = fail_on_load

    def on(self, event, callback):
        self.callbacks.setdefault(event, []).append(callback)

    def load_source(self, url):
        if self.fail_on_load:
            raise RuntimeError("cannot start")
        self.url = url

    def attach_media(self, element):
        self.log.attached(self)
        element.set_source(f"relay://{self.url}")

    def destroy(self):
        assert not self.destroyed
        self.destroyed = True
        if self.url is not None:
            self.log.released(self)

    def fire(self, event, *args):
        for callback in self.callbacks.get(event, []):
            callback(*args)


class FakeElement:
    def __init__(self):
        self.source = None
        self.calls = []
        self.muted = False

    def set_source(self, url):
        self.source = url
        self.calls.append(("set_source", url))

    def clear(self):
        self.source = None
        self.calls.append(("clear",))

    def play(self):
        self.calls.append(("play",))

    def pause(self):
        self.calls.append(("pause",))

    def set_muted(self, muted):
        self.muted = muted


class FakeCapabilities:
    def __init__(self, native_hls=False):
        self.native_hls = native_hls

    def supports_native_hls(self):
        return self.native_hls


class FakeFullscreen:
    def __init__(self, refuse=False):
        self.active = False
        self.refuse = refuse
        self.listeners = []
        self.requests = 0

    def is_fullscreen(self):
        return self.active

    def request_fullscreen(self):
        self.requests += 1
        if self.refuse:
            raise FullscreenError("refused")

    def exit_fullscreen(self):
        self.requests += 1

    def subscribe(self, callback):
        self.listeners.append(callback)
        return lambda: self.listeners.remove(callback)

    def notify(self, active):
        self.active = active
        for callback in list(self.listeners):
            callback(active)


@pytest.fixture
def log():
    return DecoderLog()


@pytest.fixture
def element():
    return FakeElement()


@pytest.fixture
def fullscreen():
    return FakeFullscreen()


@pytest.fixture
def decoders():
    return []


@pytest.fixture
def make_session(log, element, fullscreen, decoders):
    def factory(native_hls=False, **kwargs):
        def decoder_factory(config):
            decoder = FakeDecoder(log, config)
            decoders.append(decoder)
            return decoder

        return PlaybackSession(
            capabilities=FakeCapabilities(native_hls),
            element=element,
            fullscreen=fullscreen,
            decoder_factory=decoder_factory,
            **kwargs,
        )
    return factory


class TestPlanFor:
    def test_youtube_embed(self):
        plan = plan_for(classify("https://youtu.be/dQw4w9WgXcQ"), "Intro")
        assert plan.mode is RenderMode.EMBED
        assert plan.allow == YOUTUBE_ALLOW
        assert plan.title == "Intro"

    def test_vimeo_embed(self):
        plan = plan_for(classify("https://vimeo.com/76979871"))
        assert plan.mode is RenderMode.EMBED
        assert plan.source == "https://player.vimeo.com/video/76979871"
        assert plan.allow == VIMEO_ALLOW

    def test_hls_modes(self):
        ref = classify(HLS_A)
        assert plan_for(ref).mode is RenderMode.NATIVE
        assert plan_for(ref, use_decoder=True).mode is RenderMode.DECODER

    def test_direct_file_is_native(self):
        plan = plan_for(classify("https://cdn.example.com/a.mp4"))
        assert plan.mode is RenderMode.NATIVE
        assert plan.source == "https://cdn.example.com/a.mp4"

    def test_fallback_embed_uses_raw_url(self):
        plan = plan_for(classify("https://lms.example.com/player/42"))
        assert plan.mode is RenderMode.EMBED
        assert plan.source == "https://lms.example.com/player/42"

    def test_empty_is_placeholder(self):
        plan = plan_for(classify(""))
        assert plan.mode is RenderMode.PLACEHOLDER
        assert plan.message == NO_MEDIA_MESSAGE


class TestMount:
    def test_starts_idle(self, make_session):
        session = make_session()
        assert session.state is SessionState.IDLE
        assert session.epoch == 0

    def test_hls_without_native_support_uses_decoder(self, make_session, element, log, decoders):
        session = make_session(native_hls=False)
        plan = session.mount(classify(HLS_A))
        assert plan.mode is RenderMode.DECODER
        assert session.state is SessionState.MOUNTED
        assert len(decoders) == 1
        assert session.decoder is decoders[0]
        assert element.source == f"relay://{HLS_A}"
        assert log.live == 1

    def test_native_hls_creates_no_decoder(self, make_session, element, decoders):
        session = make_session(native_hls=True)
        plan = session.mount(classify(HLS_A))
        assert plan.mode is RenderMode.NATIVE
        assert decoders == []
        assert session.decoder is None
        assert element.source == HLS_A

    def test_decoder_receives_session_config(self, make_session, decoders):
        config = DecoderConfig(max_retries=7, low_latency=False)
        session = make_session(decoder_config=config)
        session.mount(classify(HLS_A))
        assert decoders[0].config is config

    def test_embed_does_not_touch_element(self, make_session, element, decoders):
        session = make_session()
        session.mount(classify("https://youtu.be/dQw4w9WgXcQ"))
        assert element.calls == []
        assert decoders == []

    def test_renderer_receives_plan(self, make_session):
        plans = []
        session = make_session(renderer=plans.append, title="Lecture 1")
        session.mount(classify("https://cdn.example.com/a.mp4"))
        assert len(plans) == 1
        assert plans[0].title == "Lecture 1"

    def test_url_change_never_overlaps_decoders(self, make_session, log, decoders):
        session = make_session()
        session.mount(classify(HLS_A))
        session.mount(classify(HLS_B))
        session.mount(classify(HLS_A))
        assert log.max_live == 1
        assert log.live == 1
        assert [kind for kind, _ in log.events] == [
            "attached", "released", "attached", "released", "attached",
        ]
        assert decoders[0].destroyed and decoders[1].destroyed
        assert not decoders[2].destroyed

    def test_mount_unmount_mount_cycle(self, make_session, log):
        first = make_session()
        first.mount(classify(HLS_A))
        first.unmount()
        second = make_session()
        second.mount(classify(HLS_B))
        assert log.max_live == 1
        assert log.events == [("attached", HLS_A), ("released", HLS_A), ("attached", HLS_B)]

    def test_switching_kind_releases_decoder(self, make_session, log, element):
        session = make_session()
        session.mount(classify(HLS_A))
        session.mount(classify("https://vimeo.com/76979871"))
        assert log.live == 0
        assert session.decoder is None
        assert ("clear",) in element.calls

    def test_epoch_advances_on_every_mount(self, make_session):
        session = make_session()
        session.mount(classify(HLS_A))
        first = session.epoch
        session.mount(classify(HLS_B))
        assert session.epoch == first + 1

    def test_capability_failure_assumes_no_native_hls(self, make_session, decoders):
        session = make_session()

        def broken():
            raise RuntimeError("boom")
        session._capabilities.supports_native_hls = broken
        session.mount(classify(HLS_A))
        assert len(decoders) == 1


class TestUnmount:
    def test_unmount_releases_decoder(self, make_session, log, element):
        session = make_session()
        session.mount(classify(HLS_A))
        session.unmount()
        assert session.state is SessionState.UNMOUNTED
        assert log.live == 0
        assert element.source is None

    def test_unmount_is_idempotent(self, make_session, decoders):
        session = make_session()
        session.mount(classify(HLS_A))
        session.unmount()
        session.unmount()
        assert decoders[0].destroyed

    def test_unmount_before_mount(self, make_session):
        session = make_session()
        session.unmount()
        assert session.state is SessionState.UNMOUNTED

    def test_unmounted_is_terminal(self, make_session):
        session = make_session()
        session.mount(classify(HLS_A))
        session.unmount()
        with pytest.raises(SessionClosedError):
            session.mount(classify(HLS_B))

    def test_decoder_destroy_failure_is_contained(self, make_session, decoders):
        session = make_session()
        session.mount(classify(HLS_A))

        def broken():
            raise RuntimeError("already gone")
        decoders[0].destroy = broken
        session.unmount()
        assert session.state is SessionState.UNMOUNTED


class TestDecoderEvents:
    def test_error_sets_load_error(self, make_session, decoders):
        errors = []
        session = make_session(on_error=errors.append)
        session.mount(classify(HLS_A))
        decoders[0].fire(DecoderEvent.ERROR, PlaybackError("Network error", details="HTTP 404"))
        assert session.load_error is not None
        assert session.load_error.message == "Network error"
        assert errors == [session.load_error]

    def test_non_playback_error_is_wrapped(self, make_session, decoders):
        session = make_session()
        session.mount(classify(HLS_A))
        decoders[0].fire(DecoderEvent.ERROR, {"type": "networkError"})
        assert session.load_error.message == "Failed to load the video"
        assert "networkError" in session.load_error.details

    def test_error_from_previous_epoch_is_dropped(self, make_session, decoders):
        errors = []
        session = make_session(on_error=errors.append)
        session.mount(classify(HLS_A))
        session.mount(classify(HLS_B))
        decoders[0].fire(DecoderEvent.ERROR, PlaybackError("late"))
        assert session.load_error is None
        assert errors == []

    def test_error_after_unmount_is_dropped(self, make_session, decoders):
        errors = []
        session = make_session(on_error=errors.append)
        session.mount(classify(HLS_A))
        session.unmount()
        decoders[0].fire(DecoderEvent.ERROR, PlaybackError("late"))
        assert errors == []

    def test_manifest_parsed_clears_error_and_notifies(self, make_session, decoders):
        ready = []
        session = make_session(on_ready=lambda: ready.append(True))
        session.mount(classify(HLS_A))
        decoders[0].fire(DecoderEvent.ERROR, PlaybackError("transient"))
        decoders[0].fire(DecoderEvent.MANIFEST_PARSED, {"live": True})
        assert session.load_error is None
        assert ready == [True]

    def test_stale_manifest_is_dropped(self, make_session, decoders):
        ready = []
        session = make_session(on_ready=lambda: ready.append(True))
        session.mount(classify(HLS_A))
        session.mount(classify(HLS_B))
        decoders[0].fire(DecoderEvent.MANIFEST_PARSED, {})
        assert ready == []

    def test_decoder_start_failure_is_reported(self, make_session, log, element):
        errors = []
        session = PlaybackSession(
            capabilities=FakeCapabilities(False),
            element=element,
            fullscreen=FakeFullscreen(),
            decoder_factory=lambda config: FakeDecoder(log, config, fail_on_load=True),
            on_error=errors.append,
        )
        session.mount(classify(HLS_A))
        assert session.load_error is not None
        assert len(errors) == 1
        assert not session.play()

    def test_start_failure_is_reported_after_render(self, log, element):
        events = []
        session = PlaybackSession(
            capabilities=FakeCapabilities(False),
            element=element,
            fullscreen=FakeFullscreen(),
            decoder_factory=lambda config: FakeDecoder(log, config, fail_on_load=True),
            renderer=lambda plan: events.append(("render", plan.mode)),
            on_error=lambda error: events.append(("error", error.message)),
        )
        session.mount(classify(HLS_A))
        session.retry()
        assert [kind for kind, _ in events] == ["render", "error", "render", "error"]
        assert events[-1] == ("error", "Failed to start stream decoder")

    def test_decoder_factory_failure_stays_inside_session(self, element):
        def broken_factory(config):
            raise OSError("no sockets")

        errors = []
        session = PlaybackSession(
            capabilities=FakeCapabilities(False),
            element=element,
            fullscreen=FakeFullscreen(),
            decoder_factory=broken_factory,
            on_error=errors.append,
        )
        plan = session.mount(classify(HLS_A))
        assert plan.mode is RenderMode.DECODER
        assert session.decoder is None
        assert session.load_error.details == "no sockets"
        assert len(errors) == 1
        assert not session.play()
        session.unmount()
        assert session.state is SessionState.UNMOUNTED

    def test_media_element_error(self, make_session):
        session = make_session()
        session.mount(classify("https://cdn.example.com/a.mp4"))
        session.report_media_error("unsupported codec")
        assert session.load_error.details == "unsupported codec"

    def test_media_element_error_ignored_for_embeds(self, make_session):
        session = make_session()
        session.mount(classify("https://youtu.be/dQw4w9WgXcQ"))
        session.report_media_error("stray")
        assert session.load_error is None


class TestRetry:
    def test_retry_builds_a_fresh_decoder(self, make_session, decoders, log):
        session = make_session()
        session.mount(classify(HLS_A))
        decoders[0].fire(DecoderEvent.ERROR, PlaybackError("boom"))
        epoch = session.epoch
        plan = session.retry()
        assert plan.mode is RenderMode.DECODER
        assert session.load_error is None
        assert session.epoch == epoch + 1
        assert len(decoders) == 2
        assert decoders[0].destroyed
        assert log.max_live == 1

    def test_retry_without_reference(self, make_session):
        assert make_session().retry() is None


class TestControls:
    def test_play_pause_toggle(self, make_session, element):
        session = make_session()
        session.mount(classify("https://cdn.example.com/a.mp4"))
        assert session.toggle_play()
        assert session.is_playing
        assert session.toggle_play()
        assert not session.is_playing
        assert element.calls[-2:] == [("play",), ("pause",)]

    def test_play_refused_for_embed(self, make_session):
        session = make_session()
        session.mount(classify("https://youtu.be/dQw4w9WgXcQ"))
        assert not session.play()
        assert not session.is_playing

    def test_play_refused_before_mount(self, make_session, element):
        session = make_session()
        assert not session.play()
        assert element.calls == []

    def test_mute_carries_across_mounts(self, make_session, element):
        session = make_session()
        session.mount(classify("https://cdn.example.com/a.mp4"))
        assert session.toggle_mute()
        assert element.muted
        session.mount(classify(HLS_A))
        assert session.is_muted
        assert element.muted

    def test_mount_resets_playing(self, make_session):
        session = make_session()
        session.mount(classify("https://cdn.example.com/a.mp4"))
        session.play()
        session.mount(classify("https://cdn.example.com/b.mp4"))
        assert not session.is_playing

    def test_navigation_callbacks(self, make_session):
        calls = []
        session = make_session(on_next=lambda: calls.append("next"))
        assert session.has_next
        assert not session.has_previous
        session.next()
        session.previous()
        assert calls == ["next"]


class TestFullscreen:
    def test_flag_follows_platform_notifications(self, make_session, fullscreen):
        changes = []
        session = make_session(on_fullscreen_changed=changes.append)
        session.mount(classify("https://cdn.example.com/a.mp4"))
        session.toggle_fullscreen()
        assert fullscreen.requests == 1
        # Requesting alone does not flip the flag
        assert not session.is_fullscreen
        fullscreen.notify(True)
        assert session.is_fullscreen
        fullscreen.notify(False)
        assert not session.is_fullscreen
        assert changes == [True, False]

    def test_refused_request_leaves_state(self, log, element, make_session):
        platform = FakeFullscreen(refuse=True)
        session = PlaybackSession(
            capabilities=FakeCapabilities(),
            element=element,
            fullscreen=platform,
            decoder_factory=lambda config: FakeDecoder(log, config),
        )
        session.mount(classify("https://cdn.example.com/a.mp4"))
        session.toggle_fullscreen()
        assert not session.is_fullscreen
        assert session.state is SessionState.MOUNTED

    def test_toggle_exits_when_active(self, make_session, fullscreen):
        session = make_session()
        session.mount(classify("https://cdn.example.com/a.mp4"))
        fullscreen.notify(True)
        session.toggle_fullscreen()
        assert fullscreen.requests == 1

    def test_unmount_unsubscribes(self, make_session, fullscreen):
        changes = []
        session = make_session(on_fullscreen_changed=changes.append)
        session.mount(classify("https://cdn.example.com/a.mp4"))
        assert len(fullscreen.listeners) == 1
        session.unmount()
        assert fullscreen.listeners == []
        fullscreen.notify(True)
        assert changes == []

    def test_remount_keeps_single_subscription(self, make_session, fullscreen):
        session = make_session()
        session.mount(classify("https://cdn.example.com/a.mp4"))
        session.mount(classify("https://cdn.example.com/b.mp4"))
        assert len(fullscreen.listeners) == 1
