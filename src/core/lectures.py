"""
Lecture helpers shared by the catalog views and the live lecture panel.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from src.core.dto.lecture import LectureDTO, LiveLectureDTO

logger = logging.getLogger(__name__)

LIVE_WINDOW = timedelta(hours=1)


def group_lectures_by_subject(lectures: Iterable[LectureDTO]) -> Dict[str, List[LectureDTO]]:
    grouped: Dict[str, List[LectureDTO]] = {}
    for lecture in lectures:
        grouped.setdefault(lecture.subject_id, []).append(lecture)
    for items in grouped.values():
        items.sort(key=lambda l: l.order_index)
    return grouped


def can_play(lecture: LectureDTO, enrolled: bool) -> bool:
    """Free lectures are open to everyone; the rest need an enrollment."""
    return bool(enrolled) or lecture.is_free


DESCRIPTION_LIMIT = 200


def clip_description(text: Optional[str], limit: int = DESCRIPTION_LIMIT) -> str:
    """Single-paragraph summary for the player header, cut at a word boundary."""
    summary = " ".join((text or "").split())
    if len(summary) <= limit:
        return summary
    cut = summary[:limit].rsplit(" ", 1)[0] or summary[:limit]
    return cut.rstrip(".,;: ") + "\u2026"


@dataclass(frozen=True)
class LectureTimeInfo:
    status: str             # "upcoming" | "live" | "offline"
    message: str
    time: Optional[str]     # HH:MM of the scheduled start

    @property
    def is_live(self) -> bool:
        return self.status == "live"


def _aligned_now(scheduled: datetime, now: Optional[datetime]) -> datetime:
    if now is None:
        now = datetime.now(timezone.utc) if scheduled.tzinfo else datetime.now()
    if scheduled.tzinfo and now.tzinfo is None:
        now = now.astimezone()
    elif scheduled.tzinfo is None and now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)
    return now


def lecture_time_info(lecture: LiveLectureDTO, now: Optional[datetime] = None) -> LectureTimeInfo:
    scheduled = lecture.scheduled_time
    time_text = scheduled.strftime("%H:%M") if scheduled else None

    if scheduled is not None:
        diff = scheduled - _aligned_now(scheduled, now)
        if diff > timedelta(0):
            minutes_total = int(diff.total_seconds() // 60)
            hours, minutes = divmod(minutes_total, 60)
            return LectureTimeInfo("upcoming", f"Starts in {hours}h {minutes}m", time_text)
        if diff > -LIVE_WINDOW:
            return LectureTimeInfo("live", "Live Now", time_text)

    if lecture.is_live:
        return LectureTimeInfo("live", "Available Now", time_text)
    return LectureTimeInfo("offline", "Offline", time_text)


def can_join(lecture: LiveLectureDTO, now: Optional[datetime] = None) -> bool:
    return lecture.is_live or lecture_time_info(lecture, now).is_live


class LiveLectureStore:
    """
    Live lectures persisted as a JSON list on disk.

    Listeners registered with ``subscribe`` are called after every save or
    refresh so open views can re-render.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lectures: List[LiveLectureDTO] = []
        self._listeners: List[Callable[[List[LiveLectureDTO]], None]] = []
        self.loaded = False

    @property
    def lectures(self) -> List[LiveLectureDTO]:
        return list(self._lectures)

    def load(self) -> List[LiveLectureDTO]:
        try:
            if self.path.exists():
                raw = json.loads(self.path.read_text(encoding="utf-8"))
                self._lectures = [LiveLectureDTO.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading live lectures: {e}")
            self._lectures = []
        finally:
            self.loaded = True
        return self.lectures

    def save(self, lectures: Sequence[LiveLectureDTO]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = [lecture.to_dict() for lecture in lectures]
            self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Error saving live lectures: {e}")
            return
        self._lectures = list(lectures)
        self._notify()

    def refresh(self) -> List[LiveLectureDTO]:
        lectures = self.load()
        self._notify()
        return lectures

    def subscribe(self, listener: Callable[[List[LiveLectureDTO]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.lectures)


class PlaylistCursor:
    """Position within an ordered list of playable lectures."""

    def __init__(self, lectures: Sequence[LectureDTO], index: int = 0):
        self._lectures = list(lectures)
        self.index = min(max(0, index), max(0, len(self._lectures) - 1))

    def __len__(self) -> int:
        return len(self._lectures)

    @property
    def current(self) -> Optional[LectureDTO]:
        if not self._lectures:
            return None
        return self._lectures[self.index]

    @property
    def has_next(self) -> bool:
        return self.index + 1 < len(self._lectures)

    @property
    def has_previous(self) -> bool:
        return self.index > 0 and bool(self._lectures)

    def next(self) -> Optional[LectureDTO]:
        if not self.has_next:
            return None
        self.index += 1
        return self.current

    def previous(self) -> Optional[LectureDTO]:
        if not self.has_previous:
            return None
        self.index -= 1
        return self.current

    def select(self, lecture_id: str) -> Optional[LectureDTO]:
        for i, lecture in enumerate(self._lectures):
            if lecture.id == lecture_id:
                self.index = i
                return lecture
        return None
