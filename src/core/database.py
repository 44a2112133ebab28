"""
SQLite settings store for Lecture Player.

Two tables: ``config`` for player settings (optionally Fernet-encrypted per
value) and ``api_credentials`` for backend keys, which are always
encrypted. The Fernet key lives in the OS keyring.
"""
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import keyring
from cryptography.fernet import Fernet, InvalidToken
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

APP_NAME = "LecturePlayer"
KEYRING_ENTRY = "encryption_key"

SCHEMA = """
CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    is_encrypted INTEGER DEFAULT 0,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS api_credentials (
    provider TEXT PRIMARY KEY,
    api_key TEXT NOT NULL,
    additional_config TEXT,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


def load_keyring_key() -> bytes:
    """Fetch the Fernet key from the OS keyring, creating it on first run."""
    try:
        stored = keyring.get_password(APP_NAME, KEYRING_ENTRY)
    except KeyringError as e:
        logger.warning(f"Could not retrieve encryption key: {e}")
        stored = None
    if stored:
        return stored.encode()

    key = Fernet.generate_key()
    try:
        keyring.set_password(APP_NAME, KEYRING_ENTRY, key.decode())
    except KeyringError as e:
        # Secrets written this session will not survive a restart
        logger.error(f"Could not store encryption key: {e}")
    return key


class DatabaseManager:
    """Settings and credentials backed by a single SQLite file."""

    VERSION = "1.0.0"

    DEFAULTS = {
        'app_version': VERSION,
        'theme': 'dark',
        'app_origin': 'https://localhost',
        'catalog_base_url': '',
        'hls_native_playback': 'auto',      # auto | never
        'hls_back_buffer_seconds': '90',
        'hls_enable_worker': 'true',
        'hls_low_latency': 'true',
        'hls_max_buffer_seconds': '30',
        'hls_max_retries': '3',
        'hls_max_bandwidth': '',            # bits/s, blank for no cap
        'volume': '100',
    }

    def __init__(self, db_path: Optional[Path] = None, *, encryption_key: Optional[bytes] = None):
        """
        Args:
            db_path: SQLite file, ``~/.lecture-player/data.db`` by default.
            encryption_key: Fernet key to use instead of the keyring one.
        """
        self.db_path = Path(db_path) if db_path else Path.home() / ".lecture-player" / "data.db"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn: Optional[sqlite3.Connection] = None
        self._fernet = Fernet(encryption_key or load_keyring_key())

    def connect(self):
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        self.conn.row_factory = sqlite3.Row
        with self.conn:
            self.conn.executescript(SCHEMA)
            self.conn.executemany(
                "INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)",
                self.DEFAULTS.items(),
            )
        logger.debug(f"Settings store opened at {self.db_path}")

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_config(self, key: str, default: Any = None) -> Any:
        row = self.conn.execute(
            "SELECT value, is_encrypted FROM config WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default
        if row['is_encrypted']:
            return self._decrypt(row['value'])
        return row['value']

    def set_config(self, key: str, value: Any, encrypt: bool = False):
        stored = self._encrypt(str(value)) if encrypt else str(value)
        with self.conn:
            self.conn.execute(
                "INSERT OR REPLACE INTO config (key, value, is_encrypted, updated_at) "
                "VALUES (?, ?, ?, CURRENT_TIMESTAMP)",
                (key, stored, int(encrypt)),
            )

    def update_config(self, values: Mapping[str, Any]):
        """Write several plain settings in one transaction."""
        with self.conn:
            self.conn.executemany(
                "INSERT OR REPLACE INTO config (key, value, is_encrypted, updated_at) "
                "VALUES (?, ?, 0, CURRENT_TIMESTAMP)",
                [(key, str(value)) for key, value in values.items()],
            )

    def reset_config(self, key: str):
        """Drop a setting back to its default (or remove it if it has none)."""
        with self.conn:
            if key in self.DEFAULTS:
                self.conn.execute(
                    "UPDATE config SET value = ?, is_encrypted = 0, updated_at = CURRENT_TIMESTAMP WHERE key = ?",
                    (self.DEFAULTS[key], key),
                )
            else:
                self.conn.execute("DELETE FROM config WHERE key = ?", (key,))

    def get_all_config(self) -> Dict[str, str]:
        """Plain settings only; encrypted values are never listed."""
        rows = self.conn.execute("SELECT key, value FROM config WHERE is_encrypted = 0")
        return {row['key']: row['value'] for row in rows}

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def set_api_credential(self, provider: str, api_key: str, additional_config: Optional[Dict] = None):
        extra = json.dumps(additional_config) if additional_config else None
        with self.conn:
            self.conn.execute(
                "INSERT OR REPLACE INTO api_credentials (provider, api_key, additional_config, updated_at) "
                "VALUES (?, ?, ?, CURRENT_TIMESTAMP)",
                (provider, self._encrypt(api_key), extra),
            )

    def get_api_credential(self, provider: str) -> Optional[Tuple[str, Optional[Dict]]]:
        """Returns ``(api_key, additional_config)`` or None."""
        row = self.conn.execute(
            "SELECT api_key, additional_config FROM api_credentials WHERE provider = ?", (provider,)
        ).fetchone()
        if row is None:
            return None
        extra = json.loads(row['additional_config']) if row['additional_config'] else None
        return self._decrypt(row['api_key']), extra

    # ------------------------------------------------------------------

    def _encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode()).decode()

    def _decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            raise ValueError("Stored secret cannot be decrypted with the current key") from None
