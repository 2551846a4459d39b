"""Export series grids as scaled PNG images for the dashboard."""

from __future__ import annotations

import base64
import io
import logging
from pathlib import Path
from typing import Mapping

from PIL import Image, ImageDraw, ImageFont

from .bitmap import BitmapSeries, series_path
from .errors import SeriesFileMissing
from .layout import LAYOUTS, GridLayout
from .utils import validate_device_id

logger = logging.getLogger(__name__)

TEXT_COLOR = (0xFF, 0xFF, 0xFF)
PADDING_COLOR = (0x00, 0x00, 0x00)
PNG_COMPRESS_LEVEL = 9


def is_mobile(user_agent: str | None) -> bool:
    return bool(user_agent) and "Mobile" in user_agent


def _load_font() -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    # close to the tiny font the axis labels were laid out for
    return ImageFont.load_default(size=8)


def _draw_text_up(canvas: Image.Image, x: int, center_y: float, text: str, font) -> None:
    """Draw *text* rotated by 90 degrees, reading bottom to top, centred on *center_y*."""
    measure = ImageDraw.Draw(canvas)
    left, top, right, bottom = measure.textbbox((0, 0), text, font=font)
    label = Image.new("RGBA", (right - left + 1, bottom - top + 1), (0, 0, 0, 0))
    ImageDraw.Draw(label).text((-left, -top), text, font=font, fill=TEXT_COLOR + (255,))
    rotated = label.rotate(90, expand=True)
    y = int(center_y - rotated.height / 2)
    canvas.paste(rotated, (x, max(0, y)), rotated)


def compose(series: BitmapSeries, scale: int, mobile: bool = False) -> Image.Image:
    """Scale *series* by an integer factor and add the labelled description border."""

    layout = series.layout
    factor = scale - 1 if mobile else scale
    if factor < 1:
        raise ValueError(f"render scale must be at least 1, got {factor}")

    source = series.image.convert("RGB")
    width = source.width * factor
    height = source.height * factor
    dborder = layout.dborder
    border = dborder * 2 if layout.counter_keyed else dborder

    scaled = source.resize((width, height), Image.Resampling.NEAREST)
    canvas = Image.new("RGB", (width + border, height + border), PADDING_COLOR)
    canvas.paste(scaled, (dborder, dborder))

    draw = ImageDraw.Draw(canvas)
    font = _load_font()
    plot_center_x = layout.xmax * factor / 2 + layout.lborder * factor + dborder
    plot_center_y = layout.ymax * factor / 2 + layout.tborder * factor + dborder

    draw.text((plot_center_x - draw.textlength(layout.ttext, font=font) / 2, 0), layout.ttext, font=font, fill=TEXT_COLOR)
    _draw_text_up(canvas, 0, plot_center_y, layout.ltext, font)

    if layout.counter_keyed:
        if layout.btext:
            bottom_y = height + border - dborder
            draw.text(
                (plot_center_x - draw.textlength(layout.btext, font=font) / 2, bottom_y),
                layout.btext,
                font=font,
                fill=TEXT_COLOR,
            )
        if layout.rtext:
            _draw_text_up(canvas, width + dborder, plot_center_y, layout.rtext, font)

    return canvas


def render_image(
    path: Path,
    layout: GridLayout,
    scale: int | None = None,
    mobile: bool = False,
) -> bytes | None:
    """Return PNG bytes for the series at *path*, or None if it does not exist."""

    try:
        series = BitmapSeries.load(path, layout)
    except SeriesFileMissing:
        logger.debug("No %s graphic available: %s", layout.name, path)
        return None
    image = compose(series, scale or layout.xscale, mobile)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", compress_level=PNG_COMPRESS_LEVEL)
    return buffer.getvalue()


def to_data_uri(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def render_img_tag(series_type: str, png: bytes) -> str:
    return f'<img alt="{series_type}" src="{to_data_uri(png)}">'


class GraphicsProvider:
    """Inline graphics for every series of a device that has a file."""

    def __init__(self, datadir: Path, layouts: Mapping[str, GridLayout] | None = None, scale: int | None = None):
        self.datadir = Path(datadir)
        self.layouts = dict(layouts or LAYOUTS)
        self.scale = scale

    def get_png(self, device_id: str, series_type: str, user_agent: str | None = None) -> bytes | None:
        device_id = validate_device_id(device_id)
        layout = self.layouts.get(series_type)
        if layout is None:
            raise ValueError(f"unknown series type: {series_type!r}")
        path = series_path(self.datadir, device_id, series_type)
        return render_image(path, layout, self.scale, mobile=is_mobile(user_agent))

    def get_graphics(self, device_id: str, user_agent: str | None = None) -> dict[str, str]:
        device_id = validate_device_id(device_id)
        html: dict[str, str] = {}
        for series_type in self.layouts:
            try:
                png = self.get_png(device_id, series_type, user_agent)
            except (OSError, ValueError):
                logger.exception("Cannot render %s graphic for %s (skip)", series_type, device_id)
                continue
            if png is None:
                continue
            html[series_type] = render_img_tag(series_type, png)
        return html
