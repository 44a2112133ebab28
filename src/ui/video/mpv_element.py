import os
import sys
import logging

logger = logging.getLogger(__name__)

# --------------------------------------------------
# mpv bootstrap
# --------------------------------------------------

def bundled_mpv_dir():
    """Directory expected to hold a bundled libmpv, or None."""
    if hasattr(sys, "_MEIPASS"):
        return os.path.join(sys._MEIPASS, "mpv")
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
    candidate = os.path.join(project_root, "mpv")
    return candidate if os.path.isdir(candidate) else None


def _setup_mpv_path():
    """Put a bundled libmpv on PATH before python-mpv loads it."""
    mpv_dir = bundled_mpv_dir()
    if not mpv_dir:
        return None
    current_path = os.environ.get("PATH", "")
    if mpv_dir not in current_path:
        os.environ["PATH"] = mpv_dir + os.pathsep + current_path
        logger.debug(f"Added bundled mpv directory to PATH: {mpv_dir}")
    return mpv_dir


_setup_mpv_path()

import mpv  # noqa: E402

from .player_controls import MPVSignals  # noqa: E402

# mpv_end_file_reason
END_FILE_ERROR = 4


class MpvMediaElement:
    """
    Native media element backed by an embedded mpv instance.

    Property observers fire on mpv's event thread; they only emit Qt
    signals, never touch widgets.
    """

    def __init__(self, wid: int, *, volume: int = 100, back_buffer_seconds: float = 90.0):
        self.signals = MPVSignals()
        self.duration = 0.0
        self._source = ""
        self.player = mpv.MPV(
            wid=int(wid),
            osc="no",
            input_default_bindings="no",
            keep_open="yes",
            vo="gpu",
            hwdec="auto-safe",
            msg_level="all=no",
            cache="yes",
            demuxer_max_bytes=96 * 1024 * 1024,
            demuxer_max_back_bytes=32 * 1024 * 1024,
            demuxer_readahead_secs=30,
            cache_secs=max(10, int(back_buffer_seconds)),
        )
        self.player.volume = max(0, min(100, int(volume)))  # type: ignore[attr-defined]
        self.player.pause = True  # type: ignore[attr-defined]

        self.player.observe_property("time-pos", self._mpv_time)
        self.player.observe_property("duration", self._mpv_duration)
        self.player.observe_property("pause", self._mpv_pause)
        self.player.observe_property("demuxer-cache-duration", self._mpv_buffer)
        self.player.observe_property("eof-reached", self._mpv_eof)
        self.player.observe_property("video-params/aspect", self._mpv_aspect)
        self.player.event_callback("end-file")(self._mpv_end_file)

    # ------------------------------------------------------------------
    # MediaElement
    # ------------------------------------------------------------------

    @property
    def source(self) -> str:
        return self._source

    def set_source(self, url: str) -> None:
        self._source = url
        self.duration = 0.0
        self.player.pause = True  # type: ignore[attr-defined]
        self.player.play(url)
        logger.info(f"mpv source set: {url[:80]}")

    def clear(self) -> None:
        self._source = ""
        self.duration = 0.0
        try:
            self.player.command("stop")
        except mpv.ShutdownError:
            return

    def play(self) -> None:
        self.player.pause = False  # type: ignore[attr-defined]

    def pause(self) -> None:
        self.player.pause = True  # type: ignore[attr-defined]

    def set_muted(self, muted: bool) -> None:
        self.player.mute = bool(muted)  # type: ignore[attr-defined]

    # ------------------------------------------------------------------

    def set_volume(self, value: int) -> None:
        self.player.volume = max(0, min(100, int(value)))  # type: ignore[attr-defined]

    def seek_ratio(self, ratio: float) -> None:
        if self.duration:
            self.player.time_pos = max(0.0, min(self.duration, ratio * self.duration))  # type: ignore[attr-defined]

    def seek_relative(self, seconds: float) -> None:
        if self.duration:
            pos = (self.player.time_pos or 0.0) + seconds  # type: ignore[attr-defined]
            self.player.time_pos = max(0.0, min(self.duration, pos))  # type: ignore[attr-defined]

    def supports_native_hls(self) -> bool:
        try:
            demuxers = self.player.demuxer_lavf_list or []  # type: ignore[attr-defined]
        except (AttributeError, mpv.ShutdownError):
            return False
        return "hls" in demuxers

    def terminate(self) -> None:
        try:
            self.player.terminate()
        except mpv.ShutdownError:
            pass

    # ------------------------------------------------------------------
    # mpv thread callbacks
    # ------------------------------------------------------------------

    def _mpv_time(self, _, v):
        try:
            pos = float(v)
        except (TypeError, ValueError):
            return
        if self.duration:
            self.signals.position.emit(pos / self.duration)

    def _mpv_duration(self, _, v):
        try:
            duration = float(v)
        except (TypeError, ValueError):
            return
        self.duration = duration
        self.signals.duration.emit(duration)

    def _mpv_pause(self, _, v):
        self.signals.pause.emit(bool(v))

    def _mpv_buffer(self, _, v):
        try:
            cached = float(v)
        except (TypeError, ValueError):
            return
        if self.duration:
            pos = self.player.time_pos or 0.0  # type: ignore[attr-defined]
            self.signals.buffer.emit(max(0.0, min(1.0, (pos + cached) / self.duration)))

    def _mpv_eof(self, _, v):
        if v:
            self.signals.eof.emit()

    def _mpv_aspect(self, _, v):
        if v:
            self.signals.aspect.emit(float(v))

    def _mpv_end_file(self, event):
        try:
            data = event.as_dict()
        except AttributeError:
            return
        if isinstance(data.get("event"), dict):
            data = data["event"]
        reason = data.get("reason")
        if isinstance(reason, bytes):
            reason = reason.decode(errors="replace")
        if str(reason).lower() in ("error", str(END_FILE_ERROR)):
            code = data.get("file_error") or data.get("error")
            if isinstance(code, bytes):
                code = code.decode(errors="replace")
            logger.error(f"mpv failed to load {self._source[:80]}: {code}")
            self.signals.load_failed.emit(str(code or "unknown error"))


class MpvCapabilities:
    """Native HLS support as reported by mpv, unless disabled in settings."""

    def __init__(self, element: MpvMediaElement, native_hls_allowed: bool = True):
        self._element = element
        self._native_hls_allowed = native_hls_allowed

    def supports_native_hls(self) -> bool:
        if not self._native_hls_allowed:
            return False
        return self._element.supports_native_hls()
