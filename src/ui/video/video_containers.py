"""
Black surface hosting mpv's native child window, letterboxed to the
stream's aspect ratio.
"""

from PyQt6.QtWidgets import QWidget, QSizePolicy
from PyQt6.QtCore import Qt, QRect, QSize


class VideoSurfaceContainer(QWidget):
    DEFAULT_ASPECT = 16 / 9

    def __init__(self, parent=None):
        super().__init__(parent)
        self._aspect = self.DEFAULT_ASPECT
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self.setAttribute(Qt.WidgetAttribute.WA_StyledBackground, True)
        self.setStyleSheet("background-color: #000;")

        # mpv renders into this window id
        self.video_widget = QWidget(self)
        self.video_widget.setObjectName("videoWidget")
        self.video_widget.setAttribute(Qt.WidgetAttribute.WA_NativeWindow)
        # Clicks fall through to the container so it can toggle playback
        self.video_widget.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents)

    @property
    def aspect_ratio(self) -> float:
        return self._aspect

    def set_aspect_ratio(self, ratio: float):
        if ratio > 0 and abs(ratio - self._aspect) > 1e-3:
            self._aspect = ratio
            self._fit_video()

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self._fit_video()

    def _fit_video(self):
        if self.width() <= 0 or self.height() <= 0:
            return
        size = QSize(round(self._aspect * 1000), 1000).scaled(self.size(), Qt.AspectRatioMode.KeepAspectRatio)
        rect = QRect(0, 0, size.width(), size.height())
        rect.moveCenter(self.rect().center())
        self.video_widget.setGeometry(rect)
