"""
Render backends - one drawing sequence, two outputs.

Entities draw through a small canvas-like capability set:
- begin_path / move_to / line_to / arc / stroke / fill
- stroke_rect for the rubber-band selection
- measure_text / fill_text for labels
- translate / save / restore / clear_rect for the redraw pass

RasterBackend replays the calls onto a Pillow image; SVGExporter accumulates
them into a standalone SVG document. Both are drop-in substitutes for the
redraw routine in fsm_core.graph.
"""

import io
import math
import re
from typing import Optional

from PIL import Image, ImageDraw, ImageFont


FONT_CANDIDATES = (
    "Times New Roman.ttf",
    "times.ttf",
    "LiberationSerif-Regular.ttf",
    "DejaVuSerif.ttf",
    "DejaVuSans.ttf",
)

_font_cache: dict[int, ImageFont.FreeTypeFont | ImageFont.ImageFont] = {}


def get_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a serif font at the given pixel size, falling back to Pillow's default."""
    cached = _font_cache.get(size)
    if cached:
        return cached
    for font_name in FONT_CANDIDATES:
        try:
            font = ImageFont.truetype(font_name, size=size)
            _font_cache[size] = font
            return font
        except OSError:
            continue
    font = ImageFont.load_default(size=size)
    _font_cache[size] = font
    return font


def font_size_from_css(font: str, default: int = 20) -> int:
    """Extract the pixel size from a CSS font shorthand like '20px serif'."""
    match = re.search(r"(\d+(?:\.\d+)?)px", font)
    if match is None:
        return default
    return max(1, int(round(float(match.group(1)))))


def fixed(number: float, digits: int) -> str:
    """Format with fixed precision, then trim trailing zeros and the point."""
    text = f"{number:.{digits}f}"
    if "." not in text:
        return text
    return text.rstrip("0").rstrip(".")


def text_to_xml(text: str) -> str:
    """Escape markup characters and encode anything outside printable ASCII."""
    text = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return "".join(
        ch if 0x20 <= ord(ch) <= 0x7E else f"&#{ord(ch)};"
        for ch in text
    )


class RenderBackend:
    """
    Shared drawing state and the capability set every backend implements.

    `advanced_text` is fixed at construction: when True, labels are handed
    to advanced_fill_text, which positions the glyphs and the caret itself.
    """

    def __init__(self, advanced_text: bool = False):
        self.fill_style = "black"
        self.stroke_style = "black"
        self.line_width: float = 1
        self.font = '12px Arial, sans-serif'
        self.advanced_text = advanced_text

    def begin_path(self) -> None:
        raise NotImplementedError

    def move_to(self, x: float, y: float) -> None:
        raise NotImplementedError

    def line_to(self, x: float, y: float) -> None:
        raise NotImplementedError

    def arc(self, x: float, y: float, radius: float,
            start_angle: float, end_angle: float, is_reversed: bool = False) -> None:
        raise NotImplementedError

    def stroke(self) -> None:
        raise NotImplementedError

    def fill(self) -> None:
        raise NotImplementedError

    def stroke_rect(self, x: float, y: float, width: float, height: float) -> None:
        raise NotImplementedError

    def measure_text(self, text: str) -> float:
        """Width of the text in the current font."""
        font = get_font(font_size_from_css(self.font))
        return float(font.getlength(text))

    def fill_text(self, text: str, x: float, y: float) -> None:
        raise NotImplementedError

    def advanced_fill_text(self, text: str, original_text: str, x: float, y: float,
                           angle_or_none: Optional[float], show_caret: bool) -> None:
        """Glyph-accurate label drawing; only called when advanced_text is set."""
        raise NotImplementedError(f"{type(self).__name__} has no advanced text path")

    def translate(self, x: float, y: float) -> None:
        raise NotImplementedError

    def save(self) -> None:
        pass

    def restore(self) -> None:
        pass

    def clear_rect(self, x: float, y: float, width: float, height: float) -> None:
        pass


# --- Raster ---

class RasterBackend(RenderBackend):
    """
    Pass-through to a Pillow ImageDraw surface.

    Paths are buffered as subpaths (polylines and arcs) between begin_path
    and stroke/fill, mirroring the HTML canvas path model.
    """

    def __init__(self, width: int, height: int, background: str = "white",
                 advanced_text: bool = False):
        super().__init__(advanced_text=advanced_text)
        self.width = width
        self.height = height
        self.background = background
        self.image = Image.new("RGB", (width, height), background)
        self._draw = ImageDraw.Draw(self.image)
        self._subpaths: list[tuple] = []
        self._trans_x = 0.0
        self._trans_y = 0.0
        self._stack: list[tuple] = []

    def _pt(self, x: float, y: float) -> tuple[float, float]:
        return (x + self._trans_x, y + self._trans_y)

    def _width(self) -> int:
        return max(1, int(round(self.line_width)))

    def _font(self):
        return get_font(font_size_from_css(self.font))

    def begin_path(self) -> None:
        self._subpaths = []

    def move_to(self, x: float, y: float) -> None:
        self._subpaths.append(("poly", [self._pt(x, y)]))

    def line_to(self, x: float, y: float) -> None:
        if not self._subpaths or self._subpaths[-1][0] != "poly":
            self._subpaths.append(("poly", []))
        self._subpaths[-1][1].append(self._pt(x, y))

    def arc(self, x: float, y: float, radius: float,
            start_angle: float, end_angle: float, is_reversed: bool = False) -> None:
        cx, cy = self._pt(x, y)
        self._subpaths.append(("arc", cx, cy, radius, start_angle, end_angle, is_reversed))

    def stroke(self) -> None:
        width = self._width()
        for subpath in self._subpaths:
            if subpath[0] == "poly":
                if len(subpath[1]) >= 2:
                    self._draw.line(subpath[1], fill=self.stroke_style, width=width)
                continue

            _, cx, cy, r, start, end, reversed_ = subpath
            bbox = [cx - r, cy - r, cx + r, cy + r]
            if abs(end - start) >= 2 * math.pi:
                self._draw.ellipse(bbox, outline=self.stroke_style, width=width)
                continue
            # Pillow sweeps clockwise (screen space) from start to end
            if reversed_:
                start, end = end, start
            self._draw.arc(bbox, math.degrees(start), math.degrees(end),
                           fill=self.stroke_style, width=width)

    def fill(self) -> None:
        for subpath in self._subpaths:
            if subpath[0] == "poly":
                points = subpath[1]
            else:
                points = _sample_arc(*subpath[1:])
            if len(points) >= 3:
                self._draw.polygon(points, fill=self.fill_style)

    def stroke_rect(self, x: float, y: float, width: float, height: float) -> None:
        x0, y0 = self._pt(x, y)
        self._draw.rectangle([x0, y0, x0 + width, y0 + height],
                             outline=self.stroke_style, width=self._width())

    def fill_text(self, text: str, x: float, y: float) -> None:
        font = self._font()
        px, py = self._pt(x, y)
        if isinstance(font, ImageFont.FreeTypeFont):
            self._draw.text((px, py), text, fill=self.fill_style, font=font, anchor="ls")
        else:
            self._draw.text((px, py - font_size_from_css(self.font)), text,
                            fill=self.fill_style, font=font)

    def advanced_fill_text(self, text: str, original_text: str, x: float, y: float,
                           angle_or_none: Optional[float], show_caret: bool) -> None:
        font = self._font()
        px, py = self._pt(x, y + 6)
        anchor = "ms" if isinstance(font, ImageFont.FreeTypeFont) else None
        self._draw.text((px, py), text, fill=self.fill_style, font=font, anchor=anchor)
        if show_caret:
            left, top, right, bottom = self._draw.textbbox((px, py), text, font=font, anchor=anchor)
            caret_x = right if text else px
            _, cy = self._pt(x, y)
            self._draw.line([(caret_x, cy - 10), (caret_x, cy + 10)],
                            fill=self.stroke_style, width=self._width())

    def translate(self, x: float, y: float) -> None:
        self._trans_x += x
        self._trans_y += y

    def save(self) -> None:
        self._stack.append((self.fill_style, self.stroke_style, self.line_width,
                            self.font, self._trans_x, self._trans_y))

    def restore(self) -> None:
        if self._stack:
            (self.fill_style, self.stroke_style, self.line_width,
             self.font, self._trans_x, self._trans_y) = self._stack.pop()

    def clear_rect(self, x: float, y: float, width: float, height: float) -> None:
        x0, y0 = self._pt(x, y)
        self._draw.rectangle([x0, y0, x0 + width, y0 + height], fill=self.background)

    def to_png(self) -> bytes:
        """Encode the current surface as PNG bytes."""
        buffer = io.BytesIO()
        self.image.save(buffer, format="PNG")
        return buffer.getvalue()


def _sample_arc(cx: float, cy: float, r: float, start: float, end: float,
                is_reversed: bool, steps: int = 32) -> list[tuple[float, float]]:
    if is_reversed:
        start, end = end, start
    if end < start:
        end += 2 * math.pi
    return [
        (cx + r * math.cos(start + (end - start) * i / steps),
         cy + r * math.sin(start + (end - start) * i / steps))
        for i in range(steps + 1)
    ]


# --- SVG ---

class SVGExporter(RenderBackend):
    """
    Draw with this instead of a raster surface and call to_svg() afterward.

    translate() sets a single global offset rather than composing a matrix;
    the redraw pass only ever issues one translate(0.5, 0.5).
    """

    def __init__(self, width: int, height: int):
        super().__init__(advanced_text=False)
        self.width = width
        self.height = height
        self._points: list[tuple[float, float]] = []
        self._svg_data: list[str] = []
        self._trans_x = 0.0
        self._trans_y = 0.0

    def to_svg(self) -> str:
        """Return the finished standalone SVG document."""
        return (
            '<?xml version="1.0" standalone="no"?>\n'
            '<!DOCTYPE svg PUBLIC "-//W3C//DTD SVG 1.1//EN" '
            '"http://www.w3.org/Graphics/SVG/1.1/DTD/svg11.dtd">\n\n'
            f'<svg width="{self.width}" height="{self.height}" version="1.1" '
            'xmlns="http://www.w3.org/2000/svg">\n'
            + "".join(self._svg_data)
            + "</svg>\n"
        )

    def _style(self) -> str:
        return f'stroke="{self.stroke_style}" stroke-width="{fixed(self.line_width, 3)}" fill="none"'

    def _points_attr(self) -> str:
        return " ".join(f"{fixed(x, 3)},{fixed(y, 3)}" for x, y in self._points)

    def begin_path(self) -> None:
        self._points = []

    def arc(self, x: float, y: float, radius: float,
            start_angle: float, end_angle: float, is_reversed: bool = False) -> None:
        x += self._trans_x
        y += self._trans_y

        if math.isclose(end_angle - start_angle, 2 * math.pi):
            self._svg_data.append(
                f'\t<ellipse {self._style()} cx="{fixed(x, 3)}" cy="{fixed(y, 3)}" '
                f'rx="{fixed(radius, 3)}" ry="{fixed(radius, 3)}"/>\n'
            )
            return

        if is_reversed:
            start_angle, end_angle = end_angle, start_angle
        if end_angle < start_angle:
            end_angle += 2 * math.pi

        start_x = x + radius * math.cos(start_angle)
        start_y = y + radius * math.sin(start_angle)
        end_x = x + radius * math.cos(end_angle)
        end_y = y + radius * math.sin(end_angle)
        large_arc = 1 if abs(end_angle - start_angle) > math.pi else 0
        sweep_positive = 1

        self._svg_data.append(
            f'\t<path {self._style()} d="'
            f'M {fixed(start_x, 3)},{fixed(start_y, 3)} '
            f'A {fixed(radius, 3)},{fixed(radius, 3)} '
            f'0 {large_arc} {sweep_positive} '
            f'{fixed(end_x, 3)},{fixed(end_y, 3)}"/>\n'
        )

    def move_to(self, x: float, y: float) -> None:
        self._points.append((x + self._trans_x, y + self._trans_y))

    line_to = move_to

    def stroke(self) -> None:
        if not self._points:
            return
        self._svg_data.append(
            f'\t<polygon stroke="{self.stroke_style}" stroke-width="{fixed(self.line_width, 3)}" '
            f'points="{self._points_attr()}"/>\n'
        )

    def fill(self) -> None:
        if not self._points:
            return
        self._svg_data.append(
            f'\t<polygon fill="{self.fill_style}" stroke-width="{fixed(self.line_width, 3)}" '
            f'points="{self._points_attr()}"/>\n'
        )

    def stroke_rect(self, x: float, y: float, width: float, height: float) -> None:
        x += self._trans_x
        y += self._trans_y
        self._svg_data.append(
            f'\t<rect {self._style()} x="{fixed(x, 3)}" y="{fixed(y, 3)}" '
            f'width="{fixed(width, 3)}" height="{fixed(height, 3)}"/>\n'
        )

    def measure_text(self, text: str) -> float:
        # Labels are always exported in the 20px serif face regardless of self.font
        return float(get_font(20).getlength(text))

    def fill_text(self, text: str, x: float, y: float) -> None:
        x += self._trans_x
        y += self._trans_y
        if text.replace(" ", ""):
            self._svg_data.append(
                f'\t<text x="{fixed(x, 3)}" y="{fixed(y, 3)}" '
                f'font-family="Times New Roman" font-size="20">{text_to_xml(text)}</text>\n'
            )

    def translate(self, x: float, y: float) -> None:
        self._trans_x = x
        self._trans_y = y
