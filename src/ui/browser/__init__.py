"""Browser window and related components."""

from .browser_window import BrowserWindow
from .browser_workers import BatchesLoadWorker, BatchContentWorker

__all__ = ['BrowserWindow', 'BatchesLoadWorker', 'BatchContentWorker']
