"""Burn annotations into a raster buffer with cairo.

Pixel buffers are cairo ImageSurfaces in FORMAT_ARGB32. Nothing here
mutates its inputs: `compose` and `crop` always return a fresh surface.
"""

import io
import logging
from typing import Iterable, Optional, Tuple, Union

import cairo

from .annotations import Annotation, Color, RectangleHighlight, TextLabel
from .geometry import Rect, round_half_up, to_pixel_rect, to_physical

log = logging.getLogger(__name__)

DEFAULT_FONT_FACE = "sans-serif"

Scale = Union[float, Tuple[float, float]]


def new_buffer(width: int, height: int, fill: Optional[Color] = None) -> cairo.ImageSurface:
    """Allocate a transparent (or `fill`-colored) ARGB32 buffer."""
    surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
    if fill is not None:
        cr = cairo.Context(surface)
        cr.set_operator(cairo.OPERATOR_SOURCE)
        cr.set_source_rgba(*fill.as_cairo())
        cr.paint()
        surface.flush()
    return surface


def _copy_into(target: cairo.ImageSurface, source: cairo.ImageSurface, x: int = 0, y: int = 0) -> None:
    cr = cairo.Context(target)
    cr.set_operator(cairo.OPERATOR_SOURCE)
    cr.set_source_surface(source, -x, -y)
    cr.get_source().set_filter(cairo.FILTER_NEAREST)
    cr.paint()
    target.flush()


def crop(buffer: cairo.ImageSurface, pixel_rect: Tuple[int, int, int, int]) -> cairo.ImageSurface:
    """Copy the (x, y, width, height) window of `buffer` into a new surface.

    Parts of the window outside `buffer` come out transparent.
    """
    x, y, width, height = pixel_rect
    if width <= 0 or height <= 0:
        raise ValueError(f"Crop size must be positive, got {width} x {height}")
    out = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
    _copy_into(out, buffer, x, y)
    return out


def surface_to_png_bytes(surface: cairo.ImageSurface) -> bytes:
    stream = io.BytesIO()
    surface.write_to_png(stream)
    return stream.getvalue()


def buffers_equal(a: cairo.ImageSurface, b: cairo.ImageSurface) -> bool:
    """Pixel-exact comparison of two surfaces."""
    if (a.get_width(), a.get_height(), a.get_format()) != (b.get_width(), b.get_height(), b.get_format()):
        return False
    a.flush()
    b.flush()
    return bytes(a.get_data()) == bytes(b.get_data())


def _scale_pair(dpi_scale: Scale) -> Tuple[float, float]:
    if isinstance(dpi_scale, (int, float)):
        return float(dpi_scale), float(dpi_scale)
    sx, sy = dpi_scale
    return float(sx), float(sy)


def _set_font(cr: cairo.Context, font_face: str, size: float) -> None:
    cr.select_font_face(font_face, cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_NORMAL)
    cr.set_font_size(size)
    options = cairo.FontOptions()
    options.set_antialias(cairo.ANTIALIAS_GRAY)
    options.set_hint_style(cairo.HINT_STYLE_NONE)
    options.set_hint_metrics(cairo.HINT_METRICS_OFF)
    cr.set_font_options(options)


def _text_extent(cr: cairo.Context, content: str) -> Tuple[float, float, float]:
    """(width, height, ascent) of `content` with the context's current font."""
    ascent, descent, height = cr.font_extents()[:3]
    x_bearing, _, width, _, x_advance, _ = cr.text_extents(content)
    return max(x_bearing + width, x_advance), max(height, ascent + descent), ascent


class CairoTextMetrics:
    """Text metrics from cairo's toy font API, matching what `compose` draws."""

    def __init__(self, font_face: str = DEFAULT_FONT_FACE):
        self.font_face = font_face
        self._cr = cairo.Context(cairo.ImageSurface(cairo.FORMAT_ARGB32, 1, 1))

    def measure(self, content: str, font_size: float) -> Tuple[float, float]:
        if not content:
            return 0.0, 0.0
        _set_font(self._cr, self.font_face, font_size)
        width, height, _ = _text_extent(self._cr, content)
        return width, height


def _draw_rectangle(
    cr: cairo.Context,
    annotation: RectangleHighlight,
    scale: Tuple[float, float],
    canvas: Rect,
) -> bool:
    sx, sy = scale
    if annotation.stroke_width <= 0:
        return False
    rect = to_physical(Rect.from_min_size(annotation.position, annotation.size), sx, sy)
    stroke_x = max(1, round_half_up(annotation.stroke_width * sx))
    stroke_y = max(1, round_half_up(annotation.stroke_width * sy))

    # Stroke is centered on the rectangle edge.
    x0 = round_half_up(rect.min_x - stroke_x / 2)
    y0 = round_half_up(rect.min_y - stroke_y / 2)
    x1 = max(x0 + stroke_x, round_half_up(rect.max_x + stroke_x / 2))
    y1 = max(y0 + stroke_y, round_half_up(rect.max_y + stroke_y / 2))
    if not Rect(x0, y0, x1, y1).intersects(canvas):
        return False

    cr.save()
    cr.set_antialias(cairo.ANTIALIAS_NONE)
    cr.set_fill_rule(cairo.FILL_RULE_EVEN_ODD)
    cr.set_source_rgba(*annotation.stroke_color.as_cairo())
    cr.rectangle(x0, y0, x1 - x0, y1 - y0)
    inner_w = (x1 - x0) - 2 * stroke_x
    inner_h = (y1 - y0) - 2 * stroke_y
    if inner_w > 0 and inner_h > 0:
        cr.rectangle(x0 + stroke_x, y0 + stroke_y, inner_w, inner_h)
    cr.fill()
    cr.restore()
    return True


def _draw_text(
    cr: cairo.Context,
    annotation: TextLabel,
    scale: Tuple[float, float],
    canvas: Rect,
    font_face: str,
) -> bool:
    sx, sy = scale
    if not annotation.content or annotation.font_size <= 0:
        return False
    cr.save()
    _set_font(cr, font_face, annotation.font_size * sy)
    width, height, ascent = _text_extent(cr, annotation.content)
    x = round_half_up(annotation.position.x * sx)
    y = round_half_up(annotation.position.y * sy)
    if not Rect(x, y, x + width, y + height).intersects(canvas):
        cr.restore()
        return False
    cr.set_source_rgba(*annotation.color.as_cairo())
    cr.move_to(x, y + ascent)
    cr.show_text(annotation.content)
    cr.restore()
    return True


def compose(
    base_buffer: cairo.ImageSurface,
    region_physical_bounds: Rect,
    annotations: Iterable[Annotation],
    dpi_scale: Scale = 1.0,
    font_face: str = DEFAULT_FONT_FACE,
) -> cairo.ImageSurface:
    """Render `annotations` bottom-to-top over a copy of `base_buffer`.

    Args:
        base_buffer: Cropped capture, top-left at the region's origin
        region_physical_bounds: Physical bounds of the capture region; sets the output size
        annotations: Annotations in z-order, positions relative to the region
        dpi_scale: Logical-to-physical factor, a float or (x, y) pair
        font_face: Cairo toy font family for text labels

    Returns:
        A new ARGB32 surface the size of the region
    """
    _, _, width, height = to_pixel_rect(region_physical_bounds)
    width, height = max(1, width), max(1, height)
    scale = _scale_pair(dpi_scale)
    canvas = Rect(0, 0, width, height)

    out = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
    _copy_into(out, base_buffer)

    cr = cairo.Context(out)
    cr.rectangle(0, 0, width, height)
    cr.clip()
    drawn = 0
    for annotation in annotations:
        if isinstance(annotation, RectangleHighlight):
            ok = _draw_rectangle(cr, annotation, scale, canvas)
        elif isinstance(annotation, TextLabel):
            ok = _draw_text(cr, annotation, scale, canvas, font_face)
        else:
            raise TypeError(f"Unknown annotation type: {type(annotation).__name__}")
        if ok:
            drawn += 1
        else:
            log.debug("Skipped off-canvas annotation %s", annotation.id)
    out.flush()
    log.debug("Composed %d annotation(s) onto %dx%d buffer", drawn, width, height)
    return out
