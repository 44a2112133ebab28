import os
from pathlib import Path


def app_data_dir() -> Path:
    """Per-user directory holding the database, logs and live lecture list."""
    override = os.environ.get("LECTURE_PLAYER_HOME")
    base = Path(override) if override else Path.home() / ".lecture-player"
    base.mkdir(parents=True, exist_ok=True)
    return base


def to_media_url(url_or_path: str) -> str:
    """
    Converts a URL or a local path string into a playable URL.

    Network and file:// URLs are returned stripped; local paths (absolute or
    relative to the working directory) become file:// URLs.
    """
    if not url_or_path:
        return ""

    text = url_or_path.strip()
    if "://" in text:
        return text

    local_path = Path(text).expanduser()
    if not local_path.is_absolute():
        local_path = Path(os.getcwd()) / local_path
    return local_path.resolve().as_uri()
