from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import requests

from src.core.api import CatalogClient
from src.core.database import DatabaseManager
from src.core.lectures import LiveLectureStore
from src.core.playback import DecoderConfig
from src.media.resolver import DEFAULT_ORIGIN

logger = logging.getLogger(__name__)

CATALOG_CREDENTIAL = "catalog"


def _as_bool(value, default: bool) -> bool:
    if value is None or value == "":
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class CoreContext:
    """
    Shared Core dependencies (DB + catalog client + live lecture store).

    Use a single instance for app lifetime.
    """

    def __init__(
        self,
        *,
        db: Optional[DatabaseManager] = None,
        session: Optional[requests.Session] = None,
        data_dir: Optional[Path] = None,
    ):
        self.data_dir = data_dir or (Path.home() / ".lecture-player")
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.db = db or DatabaseManager(self.data_dir / "data.db")
        if self.db.conn is None:
            self.db.connect()

        self.session = session or requests.Session()
        self._catalog: Optional[CatalogClient] = None

        self.live_lectures = LiveLectureStore(self.data_dir / "live_lectures.json")
        self.live_lectures.load()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _get_float(self, key: str, default: float) -> float:
        try:
            return float(self.db.get_config(key, default))
        except (TypeError, ValueError):
            logger.warning(f"Invalid value for {key}, using {default}")
            return default

    def _get_int(self, key: str, default: Optional[int]) -> Optional[int]:
        raw = self.db.get_config(key, "")
        if raw is None or str(raw).strip() == "":
            return default
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning(f"Invalid value for {key}, using {default}")
            return default

    @property
    def app_origin(self) -> str:
        return self.db.get_config("app_origin") or DEFAULT_ORIGIN

    @property
    def native_hls_allowed(self) -> bool:
        return (self.db.get_config("hls_native_playback", "auto") or "auto").lower() != "never"

    @property
    def volume(self) -> int:
        volume = self._get_int("volume", 100)
        return max(0, min(100, volume))

    def decoder_config(self) -> DecoderConfig:
        return DecoderConfig(
            back_buffer_seconds=self._get_float("hls_back_buffer_seconds", 90.0),
            enable_worker=_as_bool(self.db.get_config("hls_enable_worker"), True),
            low_latency=_as_bool(self.db.get_config("hls_low_latency"), True),
            max_buffer_seconds=self._get_float("hls_max_buffer_seconds", 30.0),
            max_retries=self._get_int("hls_max_retries", 3),
            max_bandwidth=self._get_int("hls_max_bandwidth", None),
        )

    def save_settings(
        self,
        *,
        catalog_url: Optional[str] = None,
        api_key: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> None:
        """Persist connection settings given on the command line."""
        values = {}
        if catalog_url:
            values["catalog_base_url"] = catalog_url.rstrip("/")
        if origin:
            values["app_origin"] = origin.rstrip("/")
        if values:
            self.db.update_config(values)
        if api_key:
            self.db.set_api_credential(CATALOG_CREDENTIAL, api_key)
        if catalog_url or api_key:
            # Rebuilt on next access
            self._catalog = None
        if values:
            logger.debug(f"Saved settings: {', '.join(values)}")

    def reset_settings(self, keys) -> None:
        for key in keys:
            self.db.reset_config(key)
            logger.info(f"Setting {key} reset")
        self._catalog = None

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    @property
    def catalog(self) -> Optional[CatalogClient]:
        """Catalog client, or None when no catalog URL is configured."""
        if self._catalog is None:
            base_url = self.db.get_config("catalog_base_url", "")
            if not base_url:
                return None
            try:
                credential = self.db.get_api_credential(CATALOG_CREDENTIAL)
            except ValueError as e:
                logger.error(f"Catalog API key unavailable: {e}")
                credential = None
            api_key = credential[0] if credential else None
            self._catalog = CatalogClient(base_url, api_key=api_key, session=self.session)
            logger.info(f"Catalog client created for {base_url}")
        return self._catalog

    def close(self) -> None:
        self.db.close()
        self.session.close()
