"""
Categorized logging for Lecture Player.

Modules log through ``logging.getLogger(__name__)``. Each category owns one
or more package prefixes; setting a category level sets it on those prefix
loggers and every module below them inherits it. Levels are persisted in
the settings store as ``log_level_<category>``.
"""
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Dict, Optional, Tuple


class LoggerCategory:
    """Named categories for application loggers"""
    CORE = "core"            # Context, lecture helpers, playback session
    API = "api"              # Catalog client
    MEDIA = "media"          # URL classification
    NETWORK = "network"      # HLS playlists and relay
    DATABASE = "database"    # Settings store
    VIDEO_PLAYER = "video"   # mpv element, embeds, fullscreen
    UI = "ui"                # Windows and panels


DEFAULT_LOG_LEVELS = {
    LoggerCategory.CORE: logging.INFO,
    LoggerCategory.API: logging.INFO,
    LoggerCategory.MEDIA: logging.INFO,
    LoggerCategory.NETWORK: logging.INFO,
    LoggerCategory.DATABASE: logging.WARNING,
    LoggerCategory.VIDEO_PLAYER: logging.INFO,
    LoggerCategory.UI: logging.WARNING,
}

CATEGORY_LOGGERS: Dict[str, Tuple[str, ...]] = {
    LoggerCategory.CORE: ('src.core.context', 'src.core.lectures', 'src.core.playback'),
    LoggerCategory.API: ('src.core.api',),
    LoggerCategory.MEDIA: ('src.media',),
    LoggerCategory.NETWORK: ('src.core.hls',),
    LoggerCategory.DATABASE: ('src.core.database',),
    LoggerCategory.VIDEO_PLAYER: (
        'src.ui.video.mpv_element',
        'src.ui.video.embed_view',
        'src.ui.video.fullscreen',
        'src.ui.video.lecture_player',
    ),
    LoggerCategory.UI: ('src.ui.browser', 'src.ui.video.live_lecture_panel'),
}

QUIET_LIBRARIES = ('urllib3', 'requests', 'aiohttp', 'asyncio', 'keyring')

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _parse_level(value, default: int) -> int:
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else default


class LoggingManager:
    """Owns the handlers and per-category levels."""

    LOG_FILE_NAME = "lecture_player.log"

    def __init__(self, log_dir: Optional[Path] = None, db_manager=None):
        self.log_dir = Path(log_dir) if log_dir else Path.home() / ".lecture-player" / "logs"
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.db_manager = db_manager
        self._category_levels: Dict[str, int] = self._read_levels()

    def _read_levels(self) -> Dict[str, int]:
        if self.db_manager is None:
            return dict(DEFAULT_LOG_LEVELS)
        stored = self.db_manager.get_all_config()
        return {
            category: _parse_level(stored.get(f'log_level_{category}', logging.getLevelName(default)), default)
            for category, default in DEFAULT_LOG_LEVELS.items()
        }

    def bind_config_store(self, db_manager) -> None:
        """Switch to levels persisted in ``db_manager`` once it is open."""
        self.db_manager = db_manager
        self._category_levels = self._read_levels()
        self._apply_all()

    def get_category_level(self, category: str) -> int:
        return self._category_levels.get(category, logging.INFO)

    def get_all_levels(self) -> Dict[str, int]:
        return dict(self._category_levels)

    def set_category_level(self, category: str, level: int):
        self._category_levels[category] = level
        if self.db_manager is not None:
            self.db_manager.set_config(f'log_level_{category}', logging.getLevelName(level))
        self._apply(category, level)

    def _apply(self, category: str, level: int):
        for name in CATEGORY_LOGGERS.get(category, ()):
            logging.getLogger(name).setLevel(level)

    def _apply_all(self):
        for category, level in self._category_levels.items():
            self._apply(category, level)

    def setup_logging(self, root_level: int = logging.INFO):
        """Replace root handlers with a daily rotating file and the console."""
        formatter = logging.Formatter(LOG_FORMAT)
        handlers = [
            TimedRotatingFileHandler(
                self.log_dir / self.LOG_FILE_NAME,
                when="midnight",
                backupCount=7,
                encoding="utf-8",
            ),
            logging.StreamHandler(),
        ]

        root = logging.getLogger()
        root.setLevel(root_level)
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in handlers:
            handler.setFormatter(formatter)
            root.addHandler(handler)

        self._apply_all()
        for name in QUIET_LIBRARIES:
            logging.getLogger(name).setLevel(logging.WARNING)


_logging_manager: Optional[LoggingManager] = None


def get_logging_manager(db_manager=None, log_dir: Optional[Path] = None) -> LoggingManager:
    """Get or create the global logging manager"""
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingManager(log_dir=log_dir, db_manager=db_manager)
    return _logging_manager


def setup_logging(db_manager=None, log_dir: Optional[Path] = None) -> LoggingManager:
    manager = get_logging_manager(db_manager, log_dir)
    manager.setup_logging()
    return manager
