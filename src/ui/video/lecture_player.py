import logging
from typing import Optional

from PyQt6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QSlider, QFrame, QLabel, QStackedWidget,
)
from PyQt6.QtCore import Qt, QSize, pyqtSignal
import qtawesome as qta

from src.core.dto.media import MediaReference
from src.core.hls.relay import HlsRelayDecoder
from src.core.playback import (
    NO_MEDIA_HINT,
    NO_MEDIA_MESSAGE,
    PlaybackError,
    PlaybackSession,
    RenderMode,
    RenderPlan,
    SessionState,
)
from src.core.lectures import clip_description
from src.media.resolver import classify, format_duration
from src.ui.common.theme import Colors, Fonts, Spacing, Styles
from .embed_view import EmbedView
from .fullscreen import QtFullscreenPlatform
from .mpv_element import MpvCapabilities, MpvMediaElement
from .player_controls import BufferedSlider, UiDispatcher
from .video_containers import VideoSurfaceContainer

logger = logging.getLogger(__name__)

PAGE_VIDEO, PAGE_EMBED, PAGE_PLACEHOLDER, PAGE_ERROR = range(4)


class LecturePlayerWidget(QWidget):
    """
    Lecture player: title bar, video surface (mpv or iframe embed) and
    transport controls driven by a PlaybackSession.
    """

    prev_requested = pyqtSignal()
    next_requested = pyqtSignal()
    fullscreen_changed = pyqtSignal(bool)

    def __init__(self, core_context, parent=None):
        super().__init__(parent)
        self._ctx = core_context
        self._session: Optional[PlaybackSession] = None
        self._has_prev = False
        self._has_next = False
        self._dispatcher = UiDispatcher(self)
        self.seeking = False

        self._build_ui()
        self.element = MpvMediaElement(
            int(self.surface.video_widget.winId()),
            volume=self._ctx.volume,
            back_buffer_seconds=self._ctx.decoder_config().back_buffer_seconds,
        )
        self.volume.setValue(self._ctx.volume)
        self._connect_signals()
        self._update_controls()

    # --------------------------------------------------

    def _build_ui(self):
        self.setObjectName("lecturePlayerWidget")
        root = QVBoxLayout(self)
        root.setContentsMargins(0, 0, 0, 0)
        root.setSpacing(0)

        self.header = QFrame()
        self.header.setObjectName("lectureHeader")
        header_box = QVBoxLayout(self.header)
        header_box.setContentsMargins(Spacing.LG, Spacing.SM, Spacing.LG, Spacing.SM)
        header_box.setSpacing(Spacing.XS)
        header_layout = QHBoxLayout()
        header_layout.setSpacing(Spacing.SM)
        header_box.addLayout(header_layout)

        self.title_label = QLabel()
        self.title_label.setStyleSheet(Styles.label(size=Fonts.SIZE_TITLE, weight=Fonts.WEIGHT_SEMIBOLD))
        header_layout.addWidget(self.title_label, 1)

        self.free_badge = QLabel("Free")
        self.free_badge.setStyleSheet(Styles.badge(Colors.ACCENT_SUCCESS))
        self.free_badge.setVisible(False)
        header_layout.addWidget(self.free_badge)

        self.kind_label = QLabel()
        self.kind_label.setStyleSheet(Styles.badge(Colors.BG_HOVER))
        header_layout.addWidget(self.kind_label)

        self.duration_label = QLabel()
        self.duration_label.setStyleSheet(Styles.label(Colors.TEXT_SECONDARY, Fonts.SIZE_SM))
        header_layout.addWidget(self.duration_label)

        self.description_label = QLabel()
        self.description_label.setWordWrap(True)
        self.description_label.setStyleSheet(Styles.label(Colors.TEXT_MUTED, Fonts.SIZE_SM))
        self.description_label.setVisible(False)
        header_box.addWidget(self.description_label)
        root.addWidget(self.header)

        self.stack = QStackedWidget()
        self.surface = VideoSurfaceContainer()
        self.surface.mousePressEvent = lambda e: self.toggle_play() if e.button() == Qt.MouseButton.LeftButton else None
        self.stack.addWidget(self.surface)

        self.embed_view = EmbedView(self._ctx.app_origin)
        self.stack.addWidget(self.embed_view)

        self.stack.addWidget(self._build_message_page(
            "fa5s.video-slash", NO_MEDIA_MESSAGE, NO_MEDIA_HINT
        ))

        error_page = self._build_message_page("fa5s.exclamation-triangle", "Video Load Error", "")
        self.error_detail = error_page.findChild(QLabel, "messageDetail")
        self.retry_btn = QPushButton("Retry")
        self.retry_btn.setStyleSheet(Styles.button_primary())
        self.retry_btn.clicked.connect(self.retry)
        error_page.layout().addWidget(self.retry_btn, 0, Qt.AlignmentFlag.AlignHCenter)
        self.stack.addWidget(error_page)
        root.addWidget(self.stack, 1)

        self.controls = QFrame()
        self.controls.setObjectName("videoControls")
        self.controls.setStyleSheet(Styles.CONTROLS)
        controls_layout = QVBoxLayout(self.controls)
        controls_layout.setContentsMargins(Spacing.MD, Spacing.XS, Spacing.MD, Spacing.SM)
        controls_layout.setSpacing(Spacing.XS)

        self.slider = BufferedSlider()
        self.slider.setObjectName("videoProgressSlider")
        self.slider.sliderPressed.connect(lambda: setattr(self, "seeking", True))
        self.slider.sliderReleased.connect(lambda: setattr(self, "seeking", False))
        self.slider.seek_requested.connect(self._seek)
        controls_layout.addWidget(self.slider)

        ctrl = QHBoxLayout()
        ctrl.setSpacing(Spacing.SM)
        controls_layout.addLayout(ctrl)

        self.prev_btn = self._flat_button("fa5s.step-backward", self.previous)
        self.play_btn = self._flat_button("fa5s.play", self.toggle_play)
        self.next_btn = self._flat_button("fa5s.step-forward", self.next)
        self.mute_btn = self._flat_button("fa5s.volume-up", self.toggle_mute)
        for btn in (self.prev_btn, self.play_btn, self.next_btn, self.mute_btn):
            ctrl.addWidget(btn)

        self.volume = QSlider(Qt.Orientation.Horizontal)
        self.volume.setObjectName("volumeSlider")
        self.volume.setRange(0, 100)
        self.volume.setMaximumWidth(90)
        ctrl.addWidget(self.volume)

        self.time_label = QLabel("0:00 / 0:00")
        self.time_label.setObjectName("videoTimeLabel")
        ctrl.addWidget(self.time_label)
        ctrl.addStretch(1)

        self.fullscreen_btn = self._flat_button("fa5s.expand", self.toggle_fullscreen)
        ctrl.addWidget(self.fullscreen_btn)
        root.addWidget(self.controls)

        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)

    def _build_message_page(self, icon: str, title: str, detail: str) -> QWidget:
        page = QWidget()
        page.setStyleSheet(f"background-color: {Colors.BG_SECONDARY};")
        layout = QVBoxLayout(page)
        layout.setAlignment(Qt.AlignmentFlag.AlignCenter)
        layout.setSpacing(Spacing.SM)

        icon_label = QLabel()
        icon_label.setPixmap(qta.icon(icon, color=Colors.TEXT_MUTED).pixmap(Spacing.ICON_XL, Spacing.ICON_XL))
        icon_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        layout.addWidget(icon_label)

        title_label = QLabel(title)
        title_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        title_label.setStyleSheet(Styles.label(size=Fonts.SIZE_XL, weight=Fonts.WEIGHT_SEMIBOLD))
        layout.addWidget(title_label)

        detail_label = QLabel(detail)
        detail_label.setObjectName("messageDetail")
        detail_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        detail_label.setWordWrap(True)
        detail_label.setStyleSheet(Styles.label(Colors.TEXT_SECONDARY, Fonts.SIZE_SM))
        layout.addWidget(detail_label)
        return page

    def _flat_button(self, icon: str, slot) -> QPushButton:
        btn = QPushButton()
        btn.setFlat(True)
        btn.setStyleSheet(Styles.button_flat())
        btn.setIconSize(QSize(Spacing.ICON_MD, Spacing.ICON_MD))
        btn.setIcon(qta.icon(icon, color=Colors.TEXT_PRIMARY))
        btn.clicked.connect(slot)
        return btn

    def _connect_signals(self):
        signals = self.element.signals
        signals.position.connect(self._on_position)
        signals.duration.connect(self._on_duration)
        signals.pause.connect(self._on_pause_changed)
        signals.buffer.connect(self.slider.set_buffer)
        signals.aspect.connect(self.surface.set_aspect_ratio)
        signals.load_failed.connect(self._on_element_error)
        self.volume.valueChanged.connect(self._on_volume_changed)

    # --------------------------------------------------
    # Session
    # --------------------------------------------------

    def _ensure_session(self) -> PlaybackSession:
        if self._session is None:
            self._session = PlaybackSession(
                capabilities=MpvCapabilities(self.element, self._ctx.native_hls_allowed),
                element=self.element,
                fullscreen=QtFullscreenPlatform(self.window()),
                decoder_factory=lambda config: HlsRelayDecoder(config, dispatch=self._dispatcher),
                decoder_config=self._ctx.decoder_config(),
                renderer=self._render,
                on_error=self._show_error,
                on_ready=self._on_ready,
                on_fullscreen_changed=self._on_fullscreen_changed,
            )
        return self._session

    @property
    def session(self) -> Optional[PlaybackSession]:
        return self._session

    def load(
        self,
        url: str,
        title: str = "",
        *,
        description: Optional[str] = None,
        duration_seconds: Optional[int] = None,
        is_free: bool = False,
    ) -> None:
        session = self._ensure_session()
        if session.state is SessionState.UNMOUNTED:
            logger.warning("Player has been closed; ignoring load request")
            return

        ref: MediaReference = classify(url, self._ctx.app_origin)
        session.title = title
        self.title_label.setText(title)
        summary = clip_description(description)
        self.description_label.setText(summary)
        self.description_label.setVisible(bool(summary))
        self.free_badge.setVisible(bool(is_free))
        self.kind_label.setText(ref.label)
        self.kind_label.setVisible(bool(ref.label))
        duration = format_duration(duration_seconds) if duration_seconds else ""
        self.duration_label.setText(duration)
        self.slider.setValue(0)
        self.slider.set_buffer(0.0)

        session.mount(ref)
        if session.load_error is not None:
            self._show_error(session.load_error)
        self._apply_navigation()

    def retry(self) -> None:
        if self._session is not None and self._session.state is SessionState.MOUNTED:
            self._session.retry()
            if self._session.load_error is not None:
                self._show_error(self._session.load_error)

    def set_navigation(self, has_prev: bool, has_next: bool) -> None:
        self._has_prev = bool(has_prev)
        self._has_next = bool(has_next)
        self._apply_navigation()

    def _apply_navigation(self) -> None:
        if self._session is not None:
            self._session.on_previous = self.prev_requested.emit if self._has_prev else None
            self._session.on_next = self.next_requested.emit if self._has_next else None
        self.prev_btn.setVisible(self._has_prev)
        self.next_btn.setVisible(self._has_next)

    def _render(self, plan: RenderPlan) -> None:
        if plan.mode is not RenderMode.EMBED:
            self.embed_view.clear()
        if plan.mode is RenderMode.EMBED:
            self.embed_view.show_plan(plan)
            self.stack.setCurrentIndex(PAGE_EMBED)
        elif plan.mode is RenderMode.PLACEHOLDER:
            self.stack.setCurrentIndex(PAGE_PLACEHOLDER)
        else:
            self.stack.setCurrentIndex(PAGE_VIDEO)
        self._update_controls()

    def _show_error(self, error: PlaybackError) -> None:
        self.error_detail.setText(error.message)
        self.stack.setCurrentIndex(PAGE_ERROR)
        self._update_play_icon()

    def _on_ready(self) -> None:
        if self.stack.currentIndex() == PAGE_ERROR:
            self.stack.setCurrentIndex(PAGE_VIDEO)

    def _on_element_error(self, message: str) -> None:
        if self._session is not None:
            self._session.report_media_error(message)

    # --------------------------------------------------
    # Controls
    # --------------------------------------------------

    def _element_mode(self) -> bool:
        plan = self._session.plan if self._session is not None else None
        return plan is not None and plan.mode in (RenderMode.NATIVE, RenderMode.DECODER)

    def _update_controls(self) -> None:
        enabled = self._element_mode()
        for widget in (self.play_btn, self.mute_btn, self.volume, self.slider, self.time_label):
            widget.setEnabled(enabled)
        self._update_play_icon()
        self._update_mute_icon()
        self._update_fullscreen_icon()

    def toggle_play(self) -> None:
        if self._session is None:
            return
        self._session.toggle_play()
        self._update_play_icon()

    def toggle_mute(self) -> None:
        if self._session is None:
            return
        self._session.toggle_mute()
        self._update_mute_icon()

    def toggle_fullscreen(self) -> None:
        if self._session is not None:
            self._session.toggle_fullscreen()

    def next(self) -> None:
        if self._session is not None:
            self._session.next()

    def previous(self) -> None:
        if self._session is not None:
            self._session.previous()

    def _seek(self, ratio: float) -> None:
        if self._element_mode():
            self.element.seek_ratio(ratio)

    def _on_position(self, ratio: float) -> None:
        if not self.seeking:
            self.slider.setValue(int(ratio * 1000))
        if self.element.duration:
            self.time_label.setText(
                f"{format_duration(ratio * self.element.duration) or '0:00'} / {format_duration(self.element.duration)}"
            )

    def _on_duration(self, duration: float) -> None:
        self.time_label.setText(f"0:00 / {format_duration(duration)}")

    def _on_pause_changed(self, paused: bool) -> None:
        if self._session is not None and self._session.is_playing == paused:
            # mpv paused itself (end of file, buffering stop)
            self._session.is_playing = not paused
        self._update_play_icon()

    def _on_volume_changed(self, value: int) -> None:
        self.element.set_volume(value)
        self._ctx.db.set_config("volume", str(value))

    def _on_fullscreen_changed(self, active: bool) -> None:
        self.header.setVisible(not active)
        self._update_fullscreen_icon()
        self.fullscreen_changed.emit(active)

    def _update_play_icon(self) -> None:
        playing = self._session is not None and self._session.is_playing
        name = "fa5s.pause" if playing else "fa5s.play"
        self.play_btn.setIcon(qta.icon(name, color=Colors.TEXT_PRIMARY))

    def _update_mute_icon(self) -> None:
        muted = self._session is not None and self._session.is_muted
        name = "fa5s.volume-mute" if muted else "fa5s.volume-up"
        self.mute_btn.setIcon(qta.icon(name, color=Colors.TEXT_PRIMARY))

    def _update_fullscreen_icon(self) -> None:
        active = self._session is not None and self._session.is_fullscreen
        name = "fa5s.compress" if active else "fa5s.expand"
        self.fullscreen_btn.setIcon(qta.icon(name, color=Colors.TEXT_PRIMARY))

    def keyPressEvent(self, event):
        key = event.key()
        if key == Qt.Key.Key_Space:
            self.toggle_play()
        elif key in (Qt.Key.Key_Left, Qt.Key.Key_Right):
            if self._element_mode():
                self.element.seek_relative(-5 if key == Qt.Key.Key_Left else 5)
        elif key == Qt.Key.Key_M:
            self.toggle_mute()
        elif key == Qt.Key.Key_F:
            self.toggle_fullscreen()
        elif key == Qt.Key.Key_Escape and self._session is not None and self._session.is_fullscreen:
            self.toggle_fullscreen()
        else:
            super().keyPressEvent(event)
            return
        event.accept()

    # --------------------------------------------------

    def cleanup(self) -> None:
        if self._session is not None:
            self._session.unmount()
        self.embed_view.clear()
        self.element.terminate()
