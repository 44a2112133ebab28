"""
Playback session controller.

A PlaybackSession owns the mutable state of one mounted player: play/mute
flags, the mirrored fullscreen flag and, for HLS sources on runtimes without
a native HLS demuxer, an exclusively owned streaming decoder.

Lifecycle::

    IDLE --mount--> MOUNTED --mount (url change)--> MOUNTED
                       |
                    unmount
                       v
                   UNMOUNTED (terminal)

Every transition out of MOUNTED tears the current decoder down before the
next state is built. Decoder callbacks are tagged with the epoch that was
current when they were registered; callbacks from an older epoch are
dropped.

Platform access (native HLS check, fullscreen, the media element, the
render surface) is injected so the controller runs without Qt or mpv.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from src.core.dto.media import MediaReference, SourceKind

logger = logging.getLogger(__name__)


YOUTUBE_ALLOW = "accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture"
VIMEO_ALLOW = "autoplay; fullscreen; picture-in-picture"

NO_MEDIA_MESSAGE = "No video available"
NO_MEDIA_HINT = "Please check the video URL"


class PlaybackError(Exception):
    """A recoverable media load failure reported by a decoder."""

    def __init__(self, message: str, *, fatal: bool = True, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.fatal = fatal
        self.details = details


class FullscreenError(RuntimeError):
    """Raised by a fullscreen platform when a request is refused."""


class SessionClosedError(RuntimeError):
    """Raised when a terminated session is used again."""


class SessionState(str, Enum):
    IDLE = "idle"
    MOUNTED = "mounted"
    UNMOUNTED = "unmounted"


class RenderMode(str, Enum):
    EMBED = "embed"              # provider or generic iframe
    NATIVE = "native"            # media element bound directly to the url
    DECODER = "decoder"          # media element fed by a streaming decoder
    PLACEHOLDER = "placeholder"  # nothing to play


class DecoderEvent(str, Enum):
    MANIFEST_PARSED = "manifest-parsed"
    ERROR = "error"


@dataclass(frozen=True)
class DecoderConfig:
    back_buffer_seconds: float = 90.0
    enable_worker: bool = True
    low_latency: bool = True
    max_buffer_seconds: float = 30.0
    max_retries: int = 3
    max_bandwidth: Optional[int] = None


@dataclass(frozen=True)
class RenderPlan:
    mode: RenderMode
    source: str = ""
    title: str = ""
    allow: str = ""
    message: str = ""


class PlatformCapabilities(Protocol):
    def supports_native_hls(self) -> bool: ...


class MediaElement(Protocol):
    def set_source(self, url: str) -> None: ...
    def clear(self) -> None: ...
    def play(self) -> None: ...
    def pause(self) -> None: ...
    def set_muted(self, muted: bool) -> None: ...


class FullscreenPlatform(Protocol):
    def is_fullscreen(self) -> bool: ...
    def request_fullscreen(self) -> None: ...
    def exit_fullscreen(self) -> None: ...
    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]: ...


class StreamDecoder(Protocol):
    def on(self, event: DecoderEvent, callback: Callable[..., None]) -> None: ...
    def load_source(self, url: str) -> None: ...
    def attach_media(self, element: MediaElement) -> None: ...
    def destroy(self) -> None: ...


DecoderFactory = Callable[[DecoderConfig], StreamDecoder]


def plan_for(ref: MediaReference, title: str = "", *, use_decoder: bool = False) -> RenderPlan:
    """Pick the render target for a reference."""
    kind = ref.source_kind
    if kind is SourceKind.YOUTUBE:
        return RenderPlan(RenderMode.EMBED, ref.embed_url or "", title, YOUTUBE_ALLOW)
    if kind is SourceKind.VIMEO:
        return RenderPlan(RenderMode.EMBED, ref.embed_url or "", title, VIMEO_ALLOW)
    if kind is SourceKind.HLS:
        mode = RenderMode.DECODER if use_decoder else RenderMode.NATIVE
        return RenderPlan(mode, ref.url, title)
    if kind is SourceKind.DIRECT_FILE:
        return RenderPlan(RenderMode.NATIVE, ref.url, title)
    if ref.url:
        return RenderPlan(RenderMode.EMBED, ref.url, title, YOUTUBE_ALLOW)
    return RenderPlan(RenderMode.PLACEHOLDER, "", title, message=NO_MEDIA_MESSAGE)


class PlaybackSession:
    def __init__(
        self,
        *,
        capabilities: PlatformCapabilities,
        element: MediaElement,
        fullscreen: FullscreenPlatform,
        decoder_factory: DecoderFactory,
        decoder_config: Optional[DecoderConfig] = None,
        renderer: Optional[Callable[[RenderPlan], None]] = None,
        title: str = "",
        on_next: Optional[Callable[[], None]] = None,
        on_previous: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[PlaybackError], None]] = None,
        on_ready: Optional[Callable[[], None]] = None,
        on_fullscreen_changed: Optional[Callable[[bool], None]] = None,
    ):
        self._capabilities = capabilities
        self._element = element
        self._fullscreen = fullscreen
        self._decoder_factory = decoder_factory
        self.decoder_config = decoder_config or DecoderConfig()
        self._renderer = renderer
        self.title = title
        self.on_next = on_next
        self.on_previous = on_previous
        self.on_error = on_error
        self.on_ready = on_ready
        self.on_fullscreen_changed = on_fullscreen_changed

        self.state = SessionState.IDLE
        self.reference: Optional[MediaReference] = None
        self.plan: Optional[RenderPlan] = None
        self.is_playing = False
        self.is_muted = False
        self.is_fullscreen = False
        self.load_error: Optional[PlaybackError] = None
        self.epoch = 0

        self._decoder: Optional[StreamDecoder] = None
        self._attached = False
        self._unsubscribe_fullscreen: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def decoder(self) -> Optional[StreamDecoder]:
        return self._decoder

    @property
    def has_next(self) -> bool:
        return self.on_next is not None

    @property
    def has_previous(self) -> bool:
        return self.on_previous is not None

    def mount(self, ref: MediaReference) -> RenderPlan:
        if self.state is SessionState.UNMOUNTED:
            raise SessionClosedError("Playback session has been unmounted")

        if self.state is SessionState.MOUNTED:
            # URL change: never mutate a live decoder in place
            self._teardown()
        else:
            self._subscribe_fullscreen()

        self.epoch += 1
        self.reference = ref
        self.state = SessionState.MOUNTED
        self.load_error = None
        self.is_playing = False

        use_decoder = False
        if ref.source_kind is SourceKind.HLS:
            use_decoder = not self._native_hls()

        plan = plan_for(ref, self.title, use_decoder=use_decoder)
        self.plan = plan
        logger.info(f"Mounting {ref.source_kind.value} source (epoch {self.epoch}, mode {plan.mode.value})")

        # Start failures must be reported after the page is rendered
        if self._renderer is not None:
            self._renderer(plan)

        if plan.mode is RenderMode.NATIVE:
            self._element.set_source(ref.url)
            self._element.set_muted(self.is_muted)
            self._attached = True
        elif plan.mode is RenderMode.DECODER:
            self._start_decoder(ref.url)
        return plan

    def unmount(self) -> None:
        if self.state is SessionState.UNMOUNTED:
            return
        if self.state is SessionState.MOUNTED:
            self._teardown()
        if self._unsubscribe_fullscreen is not None:
            try:
                self._unsubscribe_fullscreen()
            finally:
                self._unsubscribe_fullscreen = None
        self.epoch += 1
        self.state = SessionState.UNMOUNTED
        logger.debug("Playback session unmounted")

    def retry(self) -> Optional[RenderPlan]:
        """Re-mount the current reference after a load error."""
        if self.reference is None:
            return None
        logger.info(f"Retrying {self.reference.source_kind.value} source")
        return self.mount(self.reference)

    def _teardown(self) -> None:
        decoder = self._decoder
        self._decoder = None
        self._attached = False
        if decoder is not None:
            try:
                decoder.destroy()
            except Exception as e:
                logger.warning(f"Error releasing stream decoder: {e}")
        if self.plan is not None and self.plan.mode in (RenderMode.NATIVE, RenderMode.DECODER):
            try:
                self._element.clear()
            except Exception as e:
                logger.warning(f"Error clearing media element: {e}")
        self.is_playing = False
        self.plan = None

    def _native_hls(self) -> bool:
        try:
            return bool(self._capabilities.supports_native_hls())
        except Exception as e:
            logger.warning(f"Native HLS capability check failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Decoder
    # ------------------------------------------------------------------

    def _start_decoder(self, url: str) -> None:
        epoch = self.epoch
        try:
            decoder = self._decoder_factory(self.decoder_config)
            self._decoder = decoder
            decoder.on(
                DecoderEvent.MANIFEST_PARSED,
                lambda *args, _epoch=epoch: self._on_manifest_parsed(_epoch, *args),
            )
            decoder.on(
                DecoderEvent.ERROR,
                lambda *args, _epoch=epoch: self._on_decoder_error(_epoch, *args),
            )
            decoder.load_source(url)
            decoder.attach_media(self._element)
        except Exception as e:
            logger.error(f"Stream decoder failed to start: {e}")
            self._on_decoder_error(epoch, PlaybackError("Failed to start stream decoder", details=str(e)))
            return
        self._element.set_muted(self.is_muted)
        self._attached = True

    def _is_current(self, epoch: int) -> bool:
        return self.state is SessionState.MOUNTED and epoch == self.epoch

    def _on_manifest_parsed(self, epoch: int, *info: Any) -> None:
        if not self._is_current(epoch):
            logger.debug(f"Dropping stale manifest event (epoch {epoch}, current {self.epoch})")
            return
        logger.info("HLS manifest loaded")
        self.load_error = None
        if self.on_ready is not None:
            self.on_ready()

    def _on_decoder_error(self, epoch: int, error: Any = None, *_: Any) -> None:
        if not self._is_current(epoch):
            logger.debug(f"Dropping stale decoder error (epoch {epoch}, current {self.epoch})")
            return
        if not isinstance(error, PlaybackError):
            error = PlaybackError("Failed to load the video", details=None if error is None else str(error))
        logger.error(f"HLS error: {error.message}" + (f" ({error.details})" if error.details else ""))
        self.load_error = error
        self.is_playing = False
        if self.on_error is not None:
            self.on_error(error)

    def report_media_error(self, message: str) -> None:
        """Surface a load failure reported by the media element itself."""
        if not self._controls_element():
            return
        self._on_decoder_error(self.epoch, PlaybackError("Failed to load the video", details=message))

    # ------------------------------------------------------------------
    # Playback controls
    # ------------------------------------------------------------------

    def _controls_element(self) -> bool:
        return (
            self.state is SessionState.MOUNTED
            and self.plan is not None
            and self.plan.mode in (RenderMode.NATIVE, RenderMode.DECODER)
        )

    def play(self) -> bool:
        if not self._controls_element() or not self._attached:
            return False
        self._element.play()
        self.is_playing = True
        return True

    def pause(self) -> bool:
        if not self._controls_element():
            return False
        self._element.pause()
        self.is_playing = False
        return True

    def toggle_play(self) -> bool:
        return self.pause() if self.is_playing else self.play()

    def toggle_mute(self) -> bool:
        if not self._controls_element():
            return False
        self.is_muted = not self.is_muted
        self._element.set_muted(self.is_muted)
        return True

    def next(self) -> None:
        if self.on_next is not None:
            self.on_next()

    def previous(self) -> None:
        if self.on_previous is not None:
            self.on_previous()

    # ------------------------------------------------------------------
    # Fullscreen
    # ------------------------------------------------------------------

    def _subscribe_fullscreen(self) -> None:
        if self._unsubscribe_fullscreen is not None:
            return
        self._unsubscribe_fullscreen = self._fullscreen.subscribe(self._on_fullscreen_change)
        self.is_fullscreen = bool(self._fullscreen.is_fullscreen())

    def _on_fullscreen_change(self, active: bool) -> None:
        if self.state is not SessionState.MOUNTED:
            return
        active = bool(active)
        if active == self.is_fullscreen:
            return
        self.is_fullscreen = active
        if self.on_fullscreen_changed is not None:
            self.on_fullscreen_changed(active)

    def toggle_fullscreen(self) -> None:
        if self.state is not SessionState.MOUNTED:
            return
        try:
            if self._fullscreen.is_fullscreen():
                self._fullscreen.exit_fullscreen()
            else:
                self._fullscreen.request_fullscreen()
        except Exception as e:
            logger.error(f"Error toggling fullscreen: {e}")
