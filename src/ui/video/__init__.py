"""Video player components."""

from .lecture_player import LecturePlayerWidget
from .live_lecture_panel import LiveLecturePanel
from .player_controls import MPVSignals, BufferedSlider, UiDispatcher

__all__ = ['LecturePlayerWidget', 'LiveLecturePanel', 'MPVSignals', 'BufferedSlider', 'UiDispatcher']
