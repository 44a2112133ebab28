import logging
from typing import List, Optional

from PyQt6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QListWidget, QListWidgetItem,
)
from PyQt6.QtCore import Qt, QTimer, pyqtSignal
import qtawesome as qta

from src.core.dto.lecture import LiveLectureDTO
from src.core.lectures import LiveLectureStore, can_join, lecture_time_info
from src.ui.common.theme import Colors, Fonts, Spacing, Styles

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    "live": Colors.ACCENT_ERROR,
    "upcoming": Colors.ACCENT_SECONDARY,
    "offline": Colors.TEXT_MUTED,
}


class LiveLecturePanel(QWidget):
    """Live lecture schedule with status, refreshed every minute."""

    join_requested = pyqtSignal(object)  # LiveLectureDTO

    def __init__(self, store: LiveLectureStore, parent=None):
        super().__init__(parent)
        self._store = store
        self._lectures: List[LiveLectureDTO] = []

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(Spacing.XS)

        header = QHBoxLayout()
        header.setContentsMargins(Spacing.MD, Spacing.SM, Spacing.MD, 0)
        title = QLabel("Live Lectures")
        title.setStyleSheet(Styles.label(weight=Fonts.WEIGHT_SEMIBOLD))
        header.addWidget(title, 1)
        self.refresh_btn = QPushButton()
        self.refresh_btn.setFlat(True)
        self.refresh_btn.setStyleSheet(Styles.button_flat())
        self.refresh_btn.setIcon(qta.icon("fa5s.sync-alt", color=Colors.TEXT_SECONDARY))
        self.refresh_btn.setToolTip("Refresh")
        self.refresh_btn.clicked.connect(self._store.refresh)
        header.addWidget(self.refresh_btn)
        layout.addLayout(header)

        self.list = QListWidget()
        self.list.setStyleSheet(Styles.LIST)
        self.list.itemActivated.connect(self._on_item_activated)
        layout.addWidget(self.list, 1)

        self.empty_label = QLabel("No live lectures scheduled")
        self.empty_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.empty_label.setStyleSheet(Styles.label(Colors.TEXT_MUTED, Fonts.SIZE_SM))
        layout.addWidget(self.empty_label)

        self._unsubscribe = self._store.subscribe(self.set_lectures)

        # Countdown text goes stale as time passes
        self._tick = QTimer(self)
        self._tick.setInterval(60_000)
        self._tick.timeout.connect(self._render)
        self._tick.start()

        self.set_lectures(self._store.lectures)

    def set_lectures(self, lectures: List[LiveLectureDTO]) -> None:
        self._lectures = list(lectures)
        self._render()

    def _render(self) -> None:
        self.list.clear()
        for lecture in self._lectures:
            info = lecture_time_info(lecture)
            parts = [lecture.title]
            if lecture.instructor:
                parts.append(f"by {lecture.instructor}")
            text = "  ·  ".join(parts) + f"\n{info.message}"
            if info.time:
                text += f"  ({info.time})"
            item = QListWidgetItem(qta.icon("fa5s.circle", color=STATUS_COLORS[info.status]), text)
            item.setData(Qt.ItemDataRole.UserRole, lecture.id)
            if not can_join(lecture):
                item.setFlags(item.flags() & ~Qt.ItemFlag.ItemIsEnabled)
            self.list.addItem(item)
        self.empty_label.setVisible(not self._lectures)

    def _find(self, lecture_id: str) -> Optional[LiveLectureDTO]:
        return next((l for l in self._lectures if l.id == lecture_id), None)

    def _on_item_activated(self, item: QListWidgetItem) -> None:
        lecture = self._find(item.data(Qt.ItemDataRole.UserRole))
        if lecture is None:
            return
        logger.info(f"Joining live lecture {lecture.id}")
        self.join_requested.emit(lecture)

    def closeEvent(self, event):
        self._tick.stop()
        self._unsubscribe()
        super().closeEvent(event)
