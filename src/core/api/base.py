"""
Shared HTTP plumbing for REST clients.

Clients return plain dict/list payloads; DTO creation belongs to callers.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests
import logging


class APIError(RuntimeError):
    """Raised for HTTP / parsing errors."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


logger = logging.getLogger(__name__)

API_HEADERS = {
    "User-Agent": "LecturePlayer/1.0",
    "Accept": "application/json",
}


class BaseAPIClient:
    """Holds a requests session and performs logged JSON requests."""

    BASE_URL: str = ""
    PLATFORM: str = "api"

    def __init__(self, session: Optional[requests.Session] = None, *, base_url: Optional[str] = None):
        self.session = session or requests.Session()
        if base_url:
            self.BASE_URL = base_url.rstrip("/")
        self._configure_session()

    # ------------------------------------------------------------------
    # Session / Request helpers
    # ------------------------------------------------------------------

    def _configure_session(self) -> None:
        self.session.headers.update(API_HEADERS)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: int = 30,
    ) -> Any:
        url = f"{self.BASE_URL}{path}"

        if params:
            logger.debug(f"Request params: {params}")
            logger.info(f"API Request: {method} {url}?{urlencode(params, doseq=True)}")
        else:
            logger.info(f"API Request: {method} {url}")

        req_headers = dict(self.session.headers)
        if headers:
            req_headers.update(headers)

        try:
            resp = self.session.request(
                method=method,
                url=url,
                params=params,
                headers=req_headers,
                timeout=timeout,
            )
            if not resp.ok:
                raise APIError(f"{self.PLATFORM} API error {resp.status_code}: {resp.text}", resp.status_code)

            data = resp.json()
        except APIError:
            raise
        except (requests.RequestException, ValueError) as e:
            raise APIError(f"{self.PLATFORM} request failed: {e}") from e

        return data

    def close(self) -> None:
        self.session.close()
