"""
Tests for label shortcut expansion, placement and drawing.
"""

import pytest

from fsm_core.backends import RenderBackend
from fsm_core.text import FONT, caret_position, convert_latex_shortcuts, draw_text, layout_text


class RecordingBackend(RenderBackend):
    """Backend with fixed-width glyphs that records every call."""

    def __init__(self, advanced_text=False):
        super().__init__(advanced_text=advanced_text)
        self.calls = []

    def measure_text(self, text):
        return 10.0 * len(text)

    def begin_path(self):
        self.calls.append(("begin_path",))

    def move_to(self, x, y):
        self.calls.append(("move_to", x, y))

    def line_to(self, x, y):
        self.calls.append(("line_to", x, y))

    def stroke(self):
        self.calls.append(("stroke",))

    def fill_text(self, text, x, y):
        self.calls.append(("fill_text", text, x, y))

    def advanced_fill_text(self, text, original_text, x, y, angle_or_none, show_caret):
        self.calls.append(("advanced_fill_text", text, original_text, x, y, angle_or_none, show_caret))


def test_greek_shortcuts():
    assert convert_latex_shortcuts("\\alpha") == "α"
    assert convert_latex_shortcuts("\\Alpha") == "Α"
    assert convert_latex_shortcuts("\\omega\\Omega") == "ωΩ"


def test_sigma_skips_unassigned_capital_slot():
    assert convert_latex_shortcuts("\\Sigma") == "Σ"
    assert convert_latex_shortcuts("\\sigma") == "σ"
    assert convert_latex_shortcuts("\\Rho") == "Ρ"


def test_subscript_digits():
    assert convert_latex_shortcuts("q_0") == "q₀"
    assert convert_latex_shortcuts("S_19") == "S₁9"
    assert convert_latex_shortcuts("a_b") == "a_b"


def test_plain_text_unchanged():
    assert convert_latex_shortcuts("accept") == "accept"


def test_layout_centers_without_angle():
    c = RecordingBackend()
    layout = layout_text(c, "ab", 100, 100, None)
    assert c.font == FONT
    assert layout.width == 20
    assert (layout.x, layout.y) == (90, 100)


def test_layout_pushes_label_off_the_line():
    c = RecordingBackend()
    layout = layout_text(c, "ab", 100, 100, 0)
    # Pushed right of the anchor, vertically centered
    assert layout.x == pytest.approx(105)
    assert layout.y == pytest.approx(100)


def test_draw_text_without_caret():
    c = RecordingBackend()
    draw_text(c, "q_1", 50, 50, None, is_selected=False)
    assert c.calls == [("fill_text", "q₁", 40, 56)]


def test_draw_text_with_caret():
    c = RecordingBackend()
    layout = draw_text(c, "ab", 50, 50, None, is_selected=True, show_caret=True)
    x, y = caret_position(layout)
    assert ("move_to", x, y - 10) in c.calls
    assert ("line_to", x, y + 10) in c.calls
    assert c.calls[-1] == ("stroke",)


def test_caret_hidden_when_not_focused():
    c = RecordingBackend()
    draw_text(c, "ab", 50, 50, None, is_selected=True, show_caret=False)
    assert [call[0] for call in c.calls] == ["fill_text"]


def test_advanced_text_path_receives_center_and_caret_flag():
    c = RecordingBackend(advanced_text=True)
    draw_text(c, "\\beta", 50, 50, None, is_selected=True, show_caret=True)
    assert c.calls == [("advanced_fill_text", "β", "\\beta", 50, 50, None, True)]
