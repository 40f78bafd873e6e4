"""
Label shaping and placement.

Labels are typed as plain ASCII; two shortcut families are expanded
before drawing:
- Greek letters: \\alpha, \\Beta, ... become the Unicode letter
- Numeric subscripts: _0 .. _9 become U+2080 .. U+2089

Placement keeps a label beside the curve it annotates: given the anchor
and the outward angle, the label is pushed to the matching corner and then
slid along the tangent so that it never sits on top of the line.
"""

import math
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .backends import RenderBackend


FONT = '20px "Times New Roman", serif'

GREEK_LETTER_NAMES = [
    "Alpha", "Beta", "Gamma", "Delta", "Epsilon", "Zeta", "Eta", "Theta",
    "Iota", "Kappa", "Lambda", "Mu", "Nu", "Xi", "Omicron", "Pi", "Rho",
    "Sigma", "Tau", "Upsilon", "Phi", "Chi", "Psi", "Omega",
]

# Half the caret height and the baseline shift used when filling text
CARET_HALF_HEIGHT = 10
BASELINE_OFFSET = 6


def _greek_codepoint(base: int, index: int) -> int:
    # U+03A2 is unassigned (final sigma has no capital), so skip one slot after Rho
    return base + index + (1 if index > 16 else 0)


def convert_latex_shortcuts(text: str) -> str:
    """Expand Greek-letter and subscript shortcuts into Unicode."""
    for i, name in enumerate(GREEK_LETTER_NAMES):
        text = text.replace("\\" + name, chr(_greek_codepoint(0x391, i)))
        text = text.replace("\\" + name.lower(), chr(_greek_codepoint(0x3B1, i)))

    return re.sub(r"_([0-9])", lambda m: chr(0x2080 + int(m.group(1))), text)


@dataclass
class TextLayout:
    """Where a label ends up: its expanded text, left/baseline origin and width."""
    text: str
    x: float
    y: float
    width: float


def layout_text(
    c: "RenderBackend",
    original_text: str,
    x: float,
    y: float,
    angle_or_none: Optional[float] = None,
) -> TextLayout:
    """
    Compute the label position for an anchor point.

    Args:
        c: Backend used to measure the expanded text
        original_text: Label as typed (shortcuts unexpanded)
        x: Anchor x
        y: Anchor y
        angle_or_none: Direction pointing away from the annotated curve,
            or None to simply center the label (node captions)

    Returns:
        TextLayout whose x is the left edge of the label
    """
    text = convert_latex_shortcuts(original_text)
    c.font = FONT
    width = c.measure_text(text)

    x -= width / 2

    if angle_or_none is not None:
        cos = math.cos(angle_or_none)
        sin = math.sin(angle_or_none)
        corner_x = (width / 2 + 5) * (1 if cos > 0 else -1)
        corner_y = (10 + 5) * (1 if sin > 0 else -1)
        slide = (
            sin * math.pow(abs(sin), 40) * corner_x
            - cos * math.pow(abs(cos), 10) * corner_y
        )
        x += corner_x - sin * slide
        y += corner_y + cos * slide

    return TextLayout(text=text, x=x, y=y, width=width)


def caret_position(layout: TextLayout) -> tuple[float, float]:
    """Insertion point for in-place editing: just after the last glyph."""
    return (round(layout.x) + layout.width, round(layout.y))


def draw_text(
    c: "RenderBackend",
    original_text: str,
    x: float,
    y: float,
    angle_or_none: Optional[float],
    is_selected: bool,
    show_caret: bool = False,
) -> TextLayout:
    """
    Draw a label (and its caret when the owner is selected and focused).

    Backends constructed with advanced text support place the text and
    caret themselves from the measured glyph box.
    """
    layout = layout_text(c, original_text, x, y, angle_or_none)
    caret = is_selected and show_caret

    if c.advanced_text:
        c.advanced_fill_text(
            layout.text, original_text, layout.x + layout.width / 2, layout.y,
            angle_or_none, caret,
        )
        return layout

    # Round so the caret falls on a pixel
    x, y = caret_position(layout)
    c.fill_text(layout.text, round(layout.x), y + BASELINE_OFFSET)
    if caret:
        c.begin_path()
        c.move_to(x, y - CARET_HALF_HEIGHT)
        c.line_to(x, y + CARET_HALF_HEIGHT)
        c.stroke()
    return layout
