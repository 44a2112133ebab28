"""
Colors, fonts, spacing and stylesheet snippets for the player UI.

Usage:
    from src.ui.common.theme import Colors, Fonts, Spacing, Styles

    label.setStyleSheet(Styles.label(Colors.TEXT_SECONDARY, Fonts.SIZE_SM))
    icon = qta.icon('fa5s.play', color=Colors.TEXT_PRIMARY)
"""
from typing import Optional


class Colors:
    ACCENT_PRIMARY = "#3b82f6"    # buttons, played progress
    ACCENT_PRIMARY_HOVER = "#60a5fa"
    ACCENT_SECONDARY = "#a78bfa"  # upcoming lectures
    ACCENT_SUCCESS = "#22c55e"    # free badge
    ACCENT_ERROR = "#f87171"      # live now

    TEXT_PRIMARY = "#e5e7eb"
    TEXT_SECONDARY = "#94a3b8"
    TEXT_MUTED = "#64748b"
    TEXT_DISABLED = "#475569"
    TEXT_WHITE = "#ffffff"

    BG_PRIMARY = "#0f172a"
    BG_SECONDARY = "#111827"
    BG_HOVER = "#1e293b"
    BG_SELECTED = "#1e3a5f"

    BORDER_DEEP = "#020617"
    STATE_DISABLED_BG = "#1f2937"

    # Progress slider layers, as (r, g, b, a)
    SLIDER_GROOVE = (255, 255, 255, 40)
    SLIDER_BUFFER = (255, 255, 255, 110)
    SLIDER_HANDLE = (255, 255, 255, 255)


class Fonts:
    FAMILY = '"Inter", "Segoe UI", sans-serif'

    SIZE_XS = 11
    SIZE_SM = 12
    SIZE_MD = 13
    SIZE_XL = 16
    SIZE_TITLE = 19

    WEIGHT_NORMAL = 400
    WEIGHT_SEMIBOLD = 600


class Spacing:
    XS = 4
    SM = 8
    MD = 12
    LG = 16

    RADIUS_SM = 4
    RADIUS_MD = 6
    RADIUS_LG = 8

    ICON_MD = 20
    ICON_XL = 48


class Styles:
    WINDOW = f"""
        QMainWindow, QWidget#lectureBrowser {{
            background-color: {Colors.BG_PRIMARY};
            color: {Colors.TEXT_PRIMARY};
            font-family: {Fonts.FAMILY};
        }}
    """

    CONTROLS = f"""
        QFrame#videoControls {{
            background-color: {Colors.BG_SECONDARY};
            border-top: 1px solid {Colors.BORDER_DEEP};
        }}
        QLabel#videoTimeLabel {{
            color: {Colors.TEXT_SECONDARY};
            font-size: {Fonts.SIZE_SM}px;
        }}
    """

    # Used for both the live list and (with the selector swapped) the lecture tree
    LIST = f"""
        QListWidget {{
            background-color: {Colors.BG_SECONDARY};
            color: {Colors.TEXT_PRIMARY};
            border: none;
            font-size: {Fonts.SIZE_MD}px;
        }}
        QListWidget::item {{ padding: {Spacing.SM}px {Spacing.MD}px; }}
        QListWidget::item:selected {{ background-color: {Colors.BG_SELECTED}; color: {Colors.TEXT_WHITE}; }}
        QListWidget::item:disabled {{ color: {Colors.TEXT_DISABLED}; }}
    """

    @staticmethod
    def label(
        color: str = Colors.TEXT_PRIMARY,
        size: int = Fonts.SIZE_MD,
        weight: int = Fonts.WEIGHT_NORMAL,
        bg: Optional[str] = None,
    ) -> str:
        # Qt warns on non-positive point sizes
        rules = [f"color: {color}", f"font-size: {max(1, size)}px", f"font-weight: {weight}"]
        if bg is not None:
            rules += [f"background-color: {bg}", f"border-radius: {Spacing.RADIUS_MD}px"]
        return "QLabel { " + "; ".join(rules) + "; }"

    @staticmethod
    def badge(color: str) -> str:
        return (
            f"QLabel {{ color: {Colors.TEXT_WHITE}; background-color: {color};"
            f" border-radius: {Spacing.RADIUS_SM}px; padding: 2px {Spacing.SM}px;"
            f" font-size: {Fonts.SIZE_XS}px; font-weight: {Fonts.WEIGHT_SEMIBOLD}; }}"
        )

    @staticmethod
    def button_primary() -> str:
        return f"""
            QPushButton {{
                background-color: {Colors.ACCENT_PRIMARY};
                color: {Colors.TEXT_WHITE};
                border: none;
                border-radius: {Spacing.RADIUS_LG}px;
                padding: {Spacing.SM}px {Spacing.LG}px;
                font-weight: {Fonts.WEIGHT_SEMIBOLD};
            }}
            QPushButton:hover {{ background-color: {Colors.ACCENT_PRIMARY_HOVER}; }}
            QPushButton:disabled {{
                background-color: {Colors.STATE_DISABLED_BG};
                color: {Colors.TEXT_DISABLED};
            }}
        """

    @staticmethod
    def button_flat() -> str:
        return f"""
            QPushButton {{
                background: transparent;
                border: none;
                color: {Colors.TEXT_SECONDARY};
                padding: {Spacing.XS}px;
            }}
            QPushButton:hover {{
                background-color: {Colors.BG_HOVER};
                border-radius: {Spacing.RADIUS_LG}px;
                color: {Colors.TEXT_PRIMARY};
            }}
            QPushButton:disabled {{ color: {Colors.TEXT_DISABLED}; }}
        """
