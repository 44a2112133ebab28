"""
Lecture Player entry point.

    python main.py [URL_OR_FILE ...] [--catalog-url URL] [--api-key KEY]
                   [--user-id ID] [--origin ORIGIN] [--reset SETTING]
"""
import argparse
import asyncio
import locale
import logging
import sys

from PyQt6.QtWidgets import QApplication
from PyQt6.QtCore import QtMsgType, qInstallMessageHandler
from PyQt6.QtGui import QColor, QPalette
# QtWebEngine has to be loaded before the QApplication exists
from PyQt6 import QtWebEngineWidgets  # noqa: F401
import qasync

from src.utils.file_utils import app_data_dir, to_media_url

logger = logging.getLogger(__name__)

QT_LOG_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}

QT_NOISE = (
    "QFont::setPointSize: Point size <= 0",
    "Release of profile requested but WebEnginePage still not deleted",
)


def qt_message_handler(mode, context, message):
    if any(noise in message for noise in QT_NOISE):
        return
    logging.getLogger("qt").log(QT_LOG_LEVELS.get(mode, logging.INFO), message)


def setup_logging():
    from src.utils.logging_config import setup_logging as setup_categorized_logging

    manager = setup_categorized_logging(log_dir=app_data_dir() / "logs")
    qInstallMessageHandler(qt_message_handler)
    logger.info("Lecture Player starting")
    return manager


def parse_args(argv):
    parser = argparse.ArgumentParser(prog="lecture-player", description="Play lecture videos and streams.")
    parser.add_argument("urls", nargs="*", help="media URLs or local files to play in order")
    parser.add_argument("--catalog-url", help="course catalog backend URL (saved)")
    parser.add_argument("--api-key", help="catalog API key (saved encrypted)")
    parser.add_argument("--user-id", help="user id used for enrollment checks")
    parser.add_argument("--origin", help="page origin sent to embedded players (saved)")
    parser.add_argument(
        "--reset", action="append", metavar="SETTING", default=[],
        help="restore a saved setting to its default (repeatable)",
    )
    return parser.parse_args(argv)


def apply_palette(app: QApplication) -> None:
    from src.ui.common.theme import Colors

    palette = QPalette()
    roles = {
        QPalette.ColorRole.Window: Colors.BG_PRIMARY,
        QPalette.ColorRole.Base: Colors.BG_SECONDARY,
        QPalette.ColorRole.AlternateBase: Colors.BG_HOVER,
        QPalette.ColorRole.Button: Colors.BG_HOVER,
        QPalette.ColorRole.WindowText: Colors.TEXT_PRIMARY,
        QPalette.ColorRole.Text: Colors.TEXT_PRIMARY,
        QPalette.ColorRole.ButtonText: Colors.TEXT_PRIMARY,
        QPalette.ColorRole.Highlight: Colors.ACCENT_PRIMARY,
        QPalette.ColorRole.HighlightedText: Colors.TEXT_WHITE,
    }
    for role, color in roles.items():
        palette.setColor(role, QColor(color))
    app.setPalette(palette)


def save_cli_settings(core, args) -> None:
    if args.reset:
        core.reset_settings(args.reset)
    core.save_settings(catalog_url=args.catalog_url, api_key=args.api_key, origin=args.origin)


async def async_main(app, args):
    from src.core.context import CoreContext
    from src.ui.browser.browser_window import BrowserWindow
    from src.utils.logging_config import get_logging_manager

    try:
        core = CoreContext(data_dir=app_data_dir())
        app._core_context = core
        save_cli_settings(core, args)
        get_logging_manager().bind_config_store(core.db)

        window = BrowserWindow(core, user_id=args.user_id, urls=[to_media_url(u) for u in args.urls])
        window.show()
        app._main_window = window
        logger.info("Main window shown")
    except Exception as e:
        logger.exception(f"Fatal error during startup: {e}")
        sys.exit(1)


def main():
    args = parse_args(sys.argv[1:])
    setup_logging()

    app = QApplication(sys.argv[:1])
    app.setApplicationName("Lecture Player")
    app.setApplicationVersion("1.0.0")
    app.setOrganizationName("LecturePlayer")
    apply_palette(app)

    # libmpv refuses to initialise under a non-C numeric locale
    locale.setlocale(locale.LC_NUMERIC, "C")

    loop = qasync.QEventLoop(app)
    asyncio.set_event_loop(loop)
    app.aboutToQuit.connect(loop.stop)

    try:
        with loop:
            loop.run_until_complete(async_main(app, args))
            loop.run_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        core = getattr(app, "_core_context", None)
        if core is not None:
            core.close()
        logger.info("Lecture Player closed")


if __name__ == "__main__":
    main()
