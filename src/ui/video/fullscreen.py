from __future__ import annotations

import logging
from typing import Callable, List

from PyQt6.QtCore import QEvent, QObject, Qt
from PyQt6.QtWidgets import QWidget

from src.core.playback import FullscreenError

logger = logging.getLogger(__name__)


class QtFullscreenPlatform(QObject):
    """
    Fullscreen control for a top-level window.

    Requests only ask the window manager; subscribers learn the outcome from
    the window's WindowStateChange events.
    """

    def __init__(self, window: QWidget):
        super().__init__(window)
        self._window = window
        self._listeners: List[Callable[[bool], None]] = []
        self._last = window.isFullScreen()
        window.installEventFilter(self)

    def is_fullscreen(self) -> bool:
        return self._window.isFullScreen()

    def request_fullscreen(self) -> None:
        if not self._window.isVisible():
            raise FullscreenError("Window is not visible")
        self._window.setWindowState(self._window.windowState() | Qt.WindowState.WindowFullScreen)

    def exit_fullscreen(self) -> None:
        if not self._window.isFullScreen():
            raise FullscreenError("Window is not fullscreen")
        self._window.setWindowState(self._window.windowState() & ~Qt.WindowState.WindowFullScreen)

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def eventFilter(self, obj, event):
        if obj is self._window and event.type() == QEvent.Type.WindowStateChange:
            active = self._window.isFullScreen()
            if active != self._last:
                self._last = active
                logger.debug(f"Fullscreen changed: {active}")
                for listener in list(self._listeners):
                    listener(active)
        return super().eventFilter(obj, event)
