"""File-backed bitmap series with an in-band 32-bit cursor."""

from __future__ import annotations

import io
import logging
from pathlib import Path

from PIL import Image

from .errors import SeriesFileMissing
from .layout import CURSOR_BITS, INITIALIZED_FLAG_COLUMN, Color, GridLayout, create_grid, palette_bytes
from .utils import write_atomic

logger = logging.getLogger(__name__)

CURSOR_MAX = (1 << CURSOR_BITS) - 1


def series_path(datadir: Path, device_id: str, series_type: str) -> Path:
    return Path(datadir) / f"{device_id}.{series_type}.png"


class BitmapSeries:
    """One device's grid of time slots, one pixel per slot.

    The first image row stores the cursor (last slot written) as 32 pixels,
    least significant bit in column 0. Column 32 flags whether any slot has
    been written, so an empty grid is distinguishable from a cursor of 0.
    """

    def __init__(self, image: Image.Image, layout: GridLayout, path: Path | None = None):
        if image.mode != "P":
            raise ValueError(f"series image must be palette indexed, got mode {image.mode}")
        if image.size != (layout.width, layout.height):
            raise ValueError(
                f"series image is {image.size[0]}x{image.size[1]}, "
                f"expected {layout.width}x{layout.height} for {layout.name}"
            )
        self.image = image
        self.layout = layout
        self.path = Path(path) if path is not None else None

    @classmethod
    def new(cls, layout: GridLayout, path: Path | None = None) -> "BitmapSeries":
        return cls(create_grid(layout), layout, path)

    @classmethod
    def load(cls, path: Path, layout: GridLayout) -> "BitmapSeries":
        path = Path(path)
        if not path.exists():
            raise SeriesFileMissing(str(path))
        with Image.open(path) as source:
            source.load()
            image = source.copy()
        return cls(image, layout, path)

    @classmethod
    def open_or_create(cls, path: Path, layout: GridLayout) -> tuple["BitmapSeries", bool]:
        """Return the series at *path* and whether it had to be created."""
        path = Path(path)
        if path.exists():
            return cls.load(path, layout), False
        series = cls.new(layout, path)
        series.save()
        logger.info("Created new %s series: %s", layout.name, path)
        return series, True

    def copy(self) -> "BitmapSeries":
        return BitmapSeries(self.image.copy(), self.layout, self.path)

    # cursor

    def read_cursor(self) -> int:
        value = 0
        for bit in range(CURSOR_BITS):
            if self.image.getpixel((bit, 0)) == Color.CURSOR_1:
                value |= 1 << bit
        return value

    def write_cursor(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= CURSOR_MAX:
            raise ValueError(f"cursor must fit in 32 bits, got {value!r}")
        for bit in range(CURSOR_BITS):
            color = Color.CURSOR_1 if (value >> bit) & 1 else Color.CURSOR_0
            self.image.putpixel((bit, 0), int(color))

    @property
    def is_initialized(self) -> bool:
        return self.image.getpixel((INITIALIZED_FLAG_COLUMN, 0)) == Color.CURSOR_1

    def mark_initialized(self) -> None:
        self.image.putpixel((INITIALIZED_FLAG_COLUMN, 0), int(Color.CURSOR_1))

    # slots

    def plot(self, slot: int, color: Color) -> None:
        col, row = self.layout.cell_of(slot)
        self.image.putpixel(self.layout.pixel_of(col, row), int(color))

    def cell(self, col: int, row: int) -> Color:
        return Color(self.image.getpixel(self.layout.pixel_of(col, row)))

    def color_at(self, slot: int) -> Color:
        return self.cell(*self.layout.cell_of(slot))

    # persistence

    def to_png(self) -> bytes:
        buffer = io.BytesIO()
        # keep the fixed palette order so indices survive a reload
        self.image.putpalette(palette_bytes())
        self.image.save(buffer, format="PNG", optimize=False)
        return buffer.getvalue()

    def save(self, path: Path | None = None) -> None:
        target = Path(path) if path is not None else self.path
        if target is None:
            raise ValueError("series has no backing file")
        write_atomic(target, self.to_png())
        self.path = target
