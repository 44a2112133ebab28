from __future__ import annotations

import html
import logging

from PyQt6.QtCore import QUrl
from PyQt6.QtWebEngineCore import QWebEngineSettings
from PyQt6.QtWebEngineWidgets import QWebEngineView

from src.core.playback import RenderPlan

logger = logging.getLogger(__name__)

_PAGE = """<!DOCTYPE html>
<html><head><meta charset="utf-8">
<style>html,body{{margin:0;height:100%;background:#000;overflow:hidden}}
iframe{{border:0;width:100%;height:100%}}</style></head>
<body><iframe src="{src}" title="{title}" allow="{allow}" allowfullscreen></iframe></body></html>
"""


def iframe_page(plan: RenderPlan) -> str:
    """HTML document embedding ``plan.source`` in a full-size iframe."""
    return _PAGE.format(
        src=html.escape(plan.source, quote=True),
        title=html.escape(plan.title or "Video", quote=True),
        allow=html.escape(plan.allow, quote=True),
    )


class EmbedView(QWebEngineView):
    """Hosts provider and generic iframe embeds."""

    def __init__(self, origin: str, parent=None):
        super().__init__(parent)
        self.setObjectName("lectureEmbedView")
        self._origin = origin
        settings = self.settings()
        settings.setAttribute(QWebEngineSettings.WebAttribute.FullScreenSupportEnabled, True)
        settings.setAttribute(QWebEngineSettings.WebAttribute.PlaybackRequiresUserGesture, False)
        self.loadFinished.connect(self._on_load_finished)

    def show_plan(self, plan: RenderPlan) -> None:
        logger.info(f"Embedding {plan.source[:80]}")
        # Base URL supplies the page origin the provider player checks against
        self.setHtml(iframe_page(plan), QUrl(self._origin + "/"))

    def clear(self) -> None:
        self.setHtml("", QUrl(self._origin + "/"))

    def _on_load_finished(self, ok: bool) -> None:
        if not ok:
            logger.warning("Embedded player page failed to load")
