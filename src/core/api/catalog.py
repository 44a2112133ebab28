"""
Client for the hosted course catalog (PostgREST-style REST API).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from src.core.api.base import APIError, BaseAPIClient
from src.core.dto.lecture import BatchDTO, LectureDTO, SubjectDTO

logger = logging.getLogger(__name__)


def _eq(value: str) -> str:
    return f"eq.{value}"


def _in(values: Iterable[str]) -> str:
    return "in.(" + ",".join(str(v) for v in values) + ")"


class CatalogClient(BaseAPIClient):
    """Batches, subjects, lectures and enrollments."""

    PLATFORM = "catalog"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        super().__init__(session, base_url=f"{base_url.rstrip('/')}/rest/v1")

    def _configure_session(self) -> None:
        super()._configure_session()
        if self.api_key:
            self.session.headers.update({
                "apikey": self.api_key,
                "Authorization": f"Bearer {self.api_key}",
            })

    def _rows(self, table: str, params: Dict[str, Any]) -> List[dict]:
        data = self._request("GET", f"/{table}", params=params)
        if not isinstance(data, list):
            raise APIError(f"{self.PLATFORM} returned unexpected payload for {table}")
        return data

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def list_batches(self, active_only: bool = True) -> List[BatchDTO]:
        params = {"select": "*", "order": "created_at.desc"}
        if active_only:
            params["is_active"] = "eq.true"
        return [BatchDTO.from_row(row) for row in self._rows("batches", params)]

    def get_batch(self, batch_id: str) -> Optional[BatchDTO]:
        rows = self._rows("batches", {"select": "*", "id": _eq(batch_id), "limit": 1})
        return BatchDTO.from_row(rows[0]) if rows else None

    # ------------------------------------------------------------------
    # Subjects / lectures
    # ------------------------------------------------------------------

    def list_subjects(self, batch_id: str) -> List[SubjectDTO]:
        params = {"select": "*", "batch_id": _eq(batch_id), "order": "order_index"}
        return [SubjectDTO.from_row(row) for row in self._rows("subjects", params)]

    def list_lectures(self, subject_ids: List[str]) -> List[LectureDTO]:
        if not subject_ids:
            return []
        params = {"select": "*", "subject_id": _in(subject_ids), "order": "order_index"}
        lectures = [LectureDTO.from_row(row) for row in self._rows("lectures", params)]
        logger.debug(f"Loaded {len(lectures)} lectures for {len(subject_ids)} subjects")
        return lectures

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def is_enrolled(self, user_id: Optional[str], batch_id: str) -> bool:
        if not user_id:
            return False
        params = {
            "select": "id",
            "user_id": _eq(user_id),
            "batch_id": _eq(batch_id),
            "limit": 1,
        }
        return bool(self._rows("enrollments", params))
