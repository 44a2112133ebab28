"""
Background worker threads for catalog requests made by the browser window.

Every worker carries a token so the window can ignore results from a
request it has since superseded.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from PyQt6.QtCore import QThread, pyqtSignal

from src.core.api import APIError, CatalogClient
from src.core.dto.lecture import BatchDTO, LectureDTO, SubjectDTO
from src.core.lectures import group_lectures_by_subject

logger = logging.getLogger(__name__)


@dataclass
class BatchContent:
    batch: Optional[BatchDTO]
    subjects: List[SubjectDTO] = field(default_factory=list)
    lectures_by_subject: Dict[str, List[LectureDTO]] = field(default_factory=dict)
    enrolled: bool = False


class BatchesLoadWorker(QThread):
    """
    Loads the list of active batches.

    Signals:
        loaded(token, batches): Emitted on success
        failed(token, error): Emitted on failure
    """
    loaded = pyqtSignal(int, list)
    failed = pyqtSignal(int, str)

    def __init__(self, *, token: int, catalog: CatalogClient):
        super().__init__()
        self._token = token
        self._catalog = catalog

    @property
    def token(self) -> int:
        return self._token

    def run(self) -> None:
        try:
            batches = self._catalog.list_batches(active_only=True)
        except APIError as e:
            logger.error(f"Failed to load batches: {e}")
            self.failed.emit(self._token, str(e))
            return
        self.loaded.emit(self._token, batches)


class BatchContentWorker(QThread):
    """
    Loads a batch with its subjects, lectures and the user's enrollment.

    Signals:
        loaded(token, BatchContent): Emitted on success
        failed(token, error): Emitted on failure
    """
    loaded = pyqtSignal(int, object)
    failed = pyqtSignal(int, str)

    def __init__(self, *, token: int, catalog: CatalogClient, batch_id: str, user_id: Optional[str]):
        super().__init__()
        self._token = token
        self._catalog = catalog
        self._batch_id = batch_id
        self._user_id = user_id
        self._cancelled = False

    @property
    def token(self) -> int:
        return self._token

    def cancel(self) -> None:
        self._cancelled = True

    def run(self) -> None:
        try:
            batch = self._catalog.get_batch(self._batch_id)
            subjects = self._catalog.list_subjects(self._batch_id)
            if self._cancelled:
                return
            lectures = self._catalog.list_lectures([s.id for s in subjects])
            enrolled = self._catalog.is_enrolled(self._user_id, self._batch_id)
        except APIError as e:
            logger.error(f"Failed to load batch {self._batch_id}: {e}")
            self.failed.emit(self._token, str(e))
            return
        if self._cancelled:
            return
        self.loaded.emit(
            self._token,
            BatchContent(
                batch=batch,
                subjects=subjects,
                lectures_by_subject=group_lectures_by_subject(lectures),
                enrolled=enrolled,
            ),
        )
