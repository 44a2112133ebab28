from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class BatchDTO:
    id: str
    name: str
    price: float = 0.0
    description: Optional[str] = None
    batch_type: Optional[str] = None
    thumbnail_url: Optional[str] = None
    is_active: bool = True
    duration_weeks: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BatchDTO":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            price=float(row.get("price") or 0),
            description=row.get("description"),
            batch_type=row.get("batch_type"),
            thumbnail_url=row.get("thumbnail_url"),
            is_active=row.get("is_active") is not False,
            duration_weeks=_opt_int(row.get("duration_weeks")),
            start_date=row.get("start_date"),
            end_date=row.get("end_date"),
        )


@dataclass(frozen=True)
class SubjectDTO:
    id: str
    batch_id: str
    name: str
    description: Optional[str] = None
    order_index: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SubjectDTO":
        return cls(
            id=str(row["id"]),
            batch_id=str(row.get("batch_id") or ""),
            name=row.get("name") or "",
            description=row.get("description"),
            order_index=_opt_int(row.get("order_index")) or 0,
        )


@dataclass(frozen=True)
class LectureDTO:
    id: str
    subject_id: str
    title: str
    video_url: str = ""
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    is_free: bool = False
    order_index: int = 0

    @property
    def duration_seconds(self) -> Optional[int]:
        if self.duration_minutes is None:
            return None
        return self.duration_minutes * 60

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LectureDTO":
        return cls(
            id=str(row["id"]),
            subject_id=str(row.get("subject_id") or ""),
            title=row.get("title") or "",
            video_url=row.get("video_url") or "",
            description=row.get("description"),
            duration_minutes=_opt_int(row.get("duration_minutes")),
            is_free=bool(row.get("is_free")),
            order_index=_opt_int(row.get("order_index")) or 0,
        )


@dataclass(frozen=True)
class LiveLectureDTO:
    id: str
    title: str
    video_url: str
    instructor: str = ""
    description: str = ""
    is_live: bool = False
    scheduled_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LiveLectureDTO":
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            video_url=data.get("videoUrl") or data.get("video_url") or "",
            instructor=data.get("instructor") or "",
            description=data.get("description") or "",
            is_live=bool(data.get("isLive", data.get("is_live", False))),
            scheduled_time=_parse_timestamp(data.get("scheduledTime") or data.get("scheduled_time")),
            created_at=_parse_timestamp(data.get("createdAt") or data.get("created_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "videoUrl": self.video_url,
            "instructor": self.instructor,
            "isLive": self.is_live,
            "scheduledTime": self.scheduled_time.isoformat() if self.scheduled_time else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
