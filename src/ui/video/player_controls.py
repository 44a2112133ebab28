"""
Player control widgets and cross-thread signal carriers.

mpv property observers and the HLS relay loop both run off the Qt thread;
everything they report is marshalled back through the QObjects here.
"""

from typing import Any, Callable

from PyQt6.QtWidgets import QSlider
from PyQt6.QtCore import Qt, QObject, QPointF, QRectF, pyqtSignal
from PyQt6.QtGui import QPainter, QColor

from src.ui.common.theme import Colors


class MPVSignals(QObject):
    position = pyqtSignal(float)
    duration = pyqtSignal(float)
    pause = pyqtSignal(bool)
    buffer = pyqtSignal(float)
    eof = pyqtSignal()
    aspect = pyqtSignal(float)
    load_failed = pyqtSignal(str)


class UiDispatcher(QObject):
    """Runs callables on the thread that owns this object (the Qt thread)."""

    _invoke = pyqtSignal(object)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._invoke.connect(self._run, Qt.ConnectionType.QueuedConnection)

    def __call__(self, fn: Callable[..., None], *args: Any) -> None:
        self._invoke.emit((fn, args))

    @staticmethod
    def _run(call) -> None:
        fn, args = call
        fn(*args)


class BufferedSlider(QSlider):
    """Progress slider that also shows how far mpv has buffered ahead."""

    seek_requested = pyqtSignal(float)

    GROOVE_HEIGHT = 4
    HANDLE_RADIUS = 5
    MARGIN = 8

    def __init__(self):
        super().__init__(Qt.Orientation.Horizontal)
        self.buffer_ratio = 0.0
        self.setRange(0, 1000)
        self.setPageStep(0)
        self.setFixedHeight(18)
        self.setCursor(Qt.CursorShape.PointingHandCursor)
        self.sliderReleased.connect(lambda: self.seek_requested.emit(self.value() / self.maximum()))

    def set_buffer(self, ratio: float):
        self.buffer_ratio = max(0.0, min(1.0, ratio))
        self.update()

    def _groove(self) -> QRectF:
        top = (self.height() - self.GROOVE_HEIGHT) / 2
        return QRectF(self.MARGIN, top, max(0, self.width() - 2 * self.MARGIN), self.GROOVE_HEIGHT)

    def mousePressEvent(self, event):
        # Jump straight to the clicked position instead of paging
        if event.button() == Qt.MouseButton.LeftButton:
            groove = self._groove()
            ratio = (event.position().x() - groove.left()) / max(1.0, groove.width())
            self.setValue(round(max(0.0, min(1.0, ratio)) * self.maximum()))
            self.seek_requested.emit(self.value() / self.maximum())
        super().mousePressEvent(event)

    def paintEvent(self, _):
        groove = self._groove()
        played = self.value() / self.maximum() if self.maximum() else 0.0

        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.setPen(Qt.PenStyle.NoPen)

        layers = (
            (1.0, QColor(*Colors.SLIDER_GROOVE)),
            (self.buffer_ratio, QColor(*Colors.SLIDER_BUFFER)),
            (played, QColor(Colors.ACCENT_PRIMARY)),
        )
        for ratio, color in layers:
            if ratio <= 0:
                continue
            painter.setBrush(color)
            painter.drawRoundedRect(QRectF(groove.left(), groove.top(), groove.width() * ratio, groove.height()), 2, 2)

        painter.setBrush(QColor(*Colors.SLIDER_HANDLE))
        center = QPointF(groove.left() + groove.width() * played, groove.center().y())
        painter.drawEllipse(center, self.HANDLE_RADIUS, self.HANDLE_RADIUS)
        painter.end()
