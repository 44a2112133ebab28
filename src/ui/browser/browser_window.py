"""
Browser window
- Batch selector and ad-hoc URL bar in the toolbar
- Sidebar on the left: lectures grouped by subject, live lectures
- Lecture player on the right
"""
from PyQt6.QtWidgets import (QMainWindow, QWidget, QHBoxLayout, QToolBar, QLineEdit,
                             QPushButton, QComboBox, QLabel, QStatusBar, QSplitter,
                             QTabWidget, QTreeWidget, QTreeWidgetItem)
from PyQt6.QtCore import Qt, QThread
from PyQt6.QtGui import QKeySequence, QShortcut
import logging
from typing import List, Optional
import qtawesome as qta

from src.core.dto.lecture import BatchDTO, LectureDTO, LiveLectureDTO
from src.core.lectures import PlaylistCursor, can_play
from src.ui.browser.browser_workers import BatchContent, BatchContentWorker, BatchesLoadWorker
from src.ui.common.theme import Colors, Spacing, Styles
from src.ui.video import LecturePlayerWidget, LiveLecturePanel

logger = logging.getLogger(__name__)

LECTURE_ROLE = Qt.ItemDataRole.UserRole


class BrowserWindow(QMainWindow):
    """Main window: catalog browsing plus the lecture player."""

    def __init__(self, core, *, user_id: Optional[str] = None, urls: Optional[List[str]] = None):
        super().__init__()
        self.core = core
        self.user_id = user_id
        self._token = 0
        self._workers: List[QThread] = []
        self._cursor = PlaylistCursor([])
        self._content: Optional[BatchContent] = None

        self.setWindowTitle("Lecture Player")
        self.resize(1280, 780)
        self.setStyleSheet(Styles.WINDOW)

        self._create_ui()
        self._create_toolbar()
        self._create_statusbar()
        self._setup_shortcuts()

        if urls:
            self.play_urls(urls)
        self._load_batches()

    # ------------------------------------------------------------------
    # UI
    # ------------------------------------------------------------------

    def _create_ui(self):
        central = QWidget()
        central.setObjectName("lectureBrowser")
        layout = QHBoxLayout(central)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)

        self.splitter = QSplitter(Qt.Orientation.Horizontal)

        self.sidebar = QTabWidget()
        self.sidebar.setMinimumWidth(260)

        self.lecture_tree = QTreeWidget()
        self.lecture_tree.setHeaderHidden(True)
        self.lecture_tree.setStyleSheet(Styles.LIST.replace("QListWidget", "QTreeWidget"))
        self.lecture_tree.itemActivated.connect(self._on_lecture_activated)
        self.sidebar.addTab(self.lecture_tree, qta.icon("fa5s.list", color=Colors.TEXT_SECONDARY), "Lectures")

        self.live_panel = LiveLecturePanel(self.core.live_lectures)
        self.live_panel.join_requested.connect(self._on_join_live)
        self.sidebar.addTab(self.live_panel, qta.icon("fa5s.broadcast-tower", color=Colors.TEXT_SECONDARY), "Live")

        self.player = LecturePlayerWidget(self.core)
        self.player.prev_requested.connect(self._play_previous)
        self.player.next_requested.connect(self._play_next)
        self.player.fullscreen_changed.connect(self._on_fullscreen_changed)

        self.splitter.addWidget(self.sidebar)
        self.splitter.addWidget(self.player)
        self.splitter.setStretchFactor(1, 1)
        self.splitter.setSizes([300, 980])
        layout.addWidget(self.splitter)
        self.setCentralWidget(central)

    def _create_toolbar(self):
        self.toolbar = QToolBar("Main")
        self.toolbar.setMovable(False)
        self.addToolBar(self.toolbar)

        self.batch_combo = QComboBox()
        self.batch_combo.setMinimumWidth(220)
        self.batch_combo.setPlaceholderText("Select a batch")
        self.batch_combo.currentIndexChanged.connect(self._on_batch_changed)
        self.toolbar.addWidget(self.batch_combo)

        spacer = QWidget()
        spacer.setFixedWidth(Spacing.LG)
        self.toolbar.addWidget(spacer)

        self.url_edit = QLineEdit()
        self.url_edit.setPlaceholderText("Paste a YouTube, Vimeo, HLS or video file URL")
        self.url_edit.returnPressed.connect(self._on_play_url)
        self.toolbar.addWidget(self.url_edit)

        play_btn = QPushButton(qta.icon("fa5s.play-circle", color=Colors.TEXT_WHITE), "Play")
        play_btn.setStyleSheet(Styles.button_primary())
        play_btn.clicked.connect(self._on_play_url)
        self.toolbar.addWidget(play_btn)

    def _create_statusbar(self):
        self.status_bar = QStatusBar()
        self.status_label = QLabel()
        self.status_bar.addWidget(self.status_label, 1)
        self.setStatusBar(self.status_bar)

    def _setup_shortcuts(self):
        QShortcut(QKeySequence("Ctrl+L"), self, activated=self.url_edit.setFocus)
        QShortcut(QKeySequence("Ctrl+R"), self, activated=self.core.live_lectures.refresh)

    def _set_status(self, text: str, timeout_ms: int = 0):
        if timeout_ms:
            self.status_bar.showMessage(text, timeout_ms)
        else:
            self.status_label.setText(text)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def _start_worker(self, worker: QThread) -> None:
        self._workers.append(worker)
        worker.finished.connect(lambda w=worker: self._workers.remove(w) if w in self._workers else None)
        worker.start()

    def _load_batches(self):
        catalog = self.core.catalog
        if catalog is None:
            self.batch_combo.setEnabled(False)
            self._set_status("No catalog configured")
            return
        self._token += 1
        worker = BatchesLoadWorker(token=self._token, catalog=catalog)
        worker.loaded.connect(self._on_batches_loaded)
        worker.failed.connect(self._on_load_failed)
        self._set_status("Loading batches...")
        self._start_worker(worker)

    def _on_batches_loaded(self, token: int, batches: List[BatchDTO]):
        if token != self._token:
            return
        self.batch_combo.blockSignals(True)
        self.batch_combo.clear()
        for batch in batches:
            self.batch_combo.addItem(batch.name, batch.id)
        self.batch_combo.setCurrentIndex(-1)
        self.batch_combo.blockSignals(False)
        self._set_status(f"{len(batches)} batches")

    def _on_batch_changed(self, index: int):
        batch_id = self.batch_combo.itemData(index)
        if not batch_id or self.core.catalog is None:
            return
        self._token += 1
        for worker in self._workers:
            if isinstance(worker, BatchContentWorker):
                worker.cancel()
        worker = BatchContentWorker(
            token=self._token, catalog=self.core.catalog, batch_id=batch_id, user_id=self.user_id
        )
        worker.loaded.connect(self._on_batch_content_loaded)
        worker.failed.connect(self._on_load_failed)
        self._set_status("Loading lectures...")
        self._start_worker(worker)

    def _on_load_failed(self, token: int, error: str):
        if token != self._token:
            return
        self._set_status(f"Catalog error: {error}")

    def _on_batch_content_loaded(self, token: int, content: BatchContent):
        if token != self._token:
            return
        self._content = content
        self.lecture_tree.clear()

        playable: List[LectureDTO] = []
        for subject in content.subjects:
            lectures = content.lectures_by_subject.get(subject.id, [])
            subject_item = QTreeWidgetItem([f"{subject.name} ({len(lectures)})"])
            subject_item.setFlags(subject_item.flags() & ~Qt.ItemFlag.ItemIsSelectable)
            for lecture in lectures:
                allowed = can_play(lecture, content.enrolled)
                label = lecture.title + ("  [Free]" if lecture.is_free else "")
                icon = "fa5s.play" if allowed else "fa5s.lock"
                item = QTreeWidgetItem([label])
                item.setIcon(0, qta.icon(icon, color=Colors.TEXT_SECONDARY))
                item.setData(0, LECTURE_ROLE, lecture.id)
                if not allowed:
                    item.setFlags(item.flags() & ~Qt.ItemFlag.ItemIsEnabled)
                    item.setToolTip(0, "Enroll in this batch to watch")
                else:
                    playable.append(lecture)
                subject_item.addChild(item)
            self.lecture_tree.addTopLevelItem(subject_item)
        self.lecture_tree.expandAll()

        self._cursor = PlaylistCursor(playable)
        name = content.batch.name if content.batch else ""
        self._set_status(f"{name}: {len(playable)} playable lectures" + ("" if content.enrolled else " (not enrolled)"))

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def _play_lecture(self, lecture: Optional[LectureDTO]):
        if lecture is None:
            return
        self.player.set_navigation(self._cursor.has_previous, self._cursor.has_next)
        self.player.load(
            lecture.video_url,
            lecture.title,
            description=lecture.description,
            duration_seconds=lecture.duration_seconds,
            is_free=lecture.is_free,
        )

    def _on_lecture_activated(self, item: QTreeWidgetItem, _column: int):
        lecture_id = item.data(0, LECTURE_ROLE)
        if not lecture_id:
            return
        self._play_lecture(self._cursor.select(lecture_id))

    def _play_next(self):
        self._play_lecture(self._cursor.next())

    def _play_previous(self):
        self._play_lecture(self._cursor.previous())

    def play_urls(self, urls: List[str]):
        lectures = [
            LectureDTO(id=str(i), subject_id="", title=url, video_url=url, is_free=True, order_index=i)
            for i, url in enumerate(urls)
        ]
        self._cursor = PlaylistCursor(lectures)
        self._play_lecture(self._cursor.current)

    def _on_play_url(self):
        url = self.url_edit.text().strip()
        if url:
            self.play_urls([url])

    def _on_join_live(self, lecture: LiveLectureDTO):
        self._cursor = PlaylistCursor([])
        self.player.set_navigation(False, False)
        self.player.load(lecture.video_url, lecture.title, description=lecture.description)

    def _on_fullscreen_changed(self, active: bool):
        self.sidebar.setVisible(not active)
        self.toolbar.setVisible(not active)
        self.status_bar.setVisible(not active)

    # ------------------------------------------------------------------

    def closeEvent(self, event):
        for worker in list(self._workers):
            if isinstance(worker, BatchContentWorker):
                worker.cancel()
            worker.wait(2000)
        self.player.cleanup()
        super().closeEvent(event)
