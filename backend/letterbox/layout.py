"""Fixed grid layouts, the shared palette and the 3x5 digit font.

Series images are palette-indexed (PIL mode ``P``). Every pixel holds an index
from :class:`Color`, so the codec compares and writes indices and never
blends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum

from PIL import Image, ImageDraw

from .status import BoxStatus

logger = logging.getLogger(__name__)

BOX_STATUS = "boxstatus"
RECEIVED_STATUS = "receivedstatus"

CURSOR_BITS = 32
# column of the header row holding the "has been written" flag
INITIALIZED_FLAG_COLUMN = CURSOR_BITS


class Color(IntEnum):
    BLACK = 0
    TICKS = 1
    BORDER = 2
    CLEAR = 3
    CURSOR_0 = 4
    CURSOR_1 = 5
    RECEIVED_OK = 6
    RECEIVED_GAP = 7
    FULL = 8
    EMPTY = 9
    FILLED = 10
    EMPTIED = 11


PALETTE_RGB: dict[Color, tuple[int, int, int]] = {
    Color.BLACK: (0x00, 0x00, 0x00),
    Color.TICKS: (0x10, 0x10, 0x10),
    Color.BORDER: (0xA0, 0xA0, 0xA0),
    Color.CLEAR: (0xFF, 0xFF, 0xFF),
    Color.CURSOR_0: (0x01, 0x01, 0x01),
    Color.CURSOR_1: (0x02, 0x02, 0x02),
    Color.RECEIVED_OK: (0xCC, 0xFF, 0x66),
    Color.RECEIVED_GAP: (0xFF, 0x00, 0x00),
    Color.FULL: (0x6F, 0xEF, 0x00),
    Color.EMPTY: (0xC8, 0xC8, 0xC8),
    Color.FILLED: (0xFF, 0xFF, 0x00),
    Color.EMPTIED: (0xFF, 0x80, 0x80),
}

STATUS_COLORS: dict[BoxStatus, Color] = {
    BoxStatus.FULL: Color.FULL,
    BoxStatus.EMPTY: Color.EMPTY,
    BoxStatus.FILLED: Color.FILLED,
    BoxStatus.EMPTIED: Color.EMPTIED,
}


def palette_bytes() -> list[int]:
    flat: list[int] = []
    for color in Color:
        flat.extend(PALETTE_RGB[color])
    return flat


@dataclass(frozen=True)
class GridLayout:
    """Static geometry of one series type."""

    name: str
    xmax: int
    ymax: int
    xgrid: int
    ygrid: int
    xdiv: int
    ydiv: int
    xscale: int
    yscale: int
    dborder: int
    lborder: int
    rborder: int
    tborder: int
    bborder: int
    ttext: str
    ltext: str
    btext: str | None = None
    rtext: str | None = None
    # heartbeat grids are keyed by uplink counter, level grids by time bucket
    counter_keyed: bool = False

    @property
    def width(self) -> int:
        return self.xmax + self.lborder + self.rborder

    @property
    def height(self) -> int:
        return self.ymax + self.tborder + self.bborder

    @property
    def slots(self) -> int:
        return self.xmax * self.ymax

    def cell_of(self, slot: int) -> tuple[int, int]:
        """Return ``(col, row)`` of *slot* on the ring buffer."""
        return slot % self.xmax, (slot // self.xmax) % self.ymax

    def pixel_of(self, col: int, row: int) -> tuple[int, int]:
        return self.lborder + col, self.tborder + row


LAYOUTS: dict[str, GridLayout] = {
    BOX_STATUS: GridLayout(
        name=BOX_STATUS,
        xmax=96,  # every 15 min
        ymax=100,  # 100 days
        xgrid=4,
        ygrid=5,
        xdiv=4,
        ydiv=1,
        xscale=3,
        yscale=3,
        dborder=8,
        lborder=13,
        rborder=5,
        tborder=11,
        bborder=5,
        ttext="Hour Of Day (UTC)",
        ltext="Days (rollover)",
    ),
    RECEIVED_STATUS: GridLayout(
        name=RECEIVED_STATUS,
        xmax=48,  # every 30 min
        ymax=100,
        xgrid=2,
        ygrid=5,
        xdiv=2,
        ydiv=1,
        xscale=3,
        yscale=3,
        dborder=8,
        lborder=13,
        rborder=21,
        tborder=11,
        bborder=11,
        ttext="Hour Of Day (UTC)",
        ltext="Days (rollover)",
        btext="Counter (rollover)",
        rtext="Counter (rollover)",
        counter_keyed=True,
    ),
}


def get_layout(series_type: str) -> GridLayout:
    try:
        return LAYOUTS[series_type]
    except KeyError:
        raise ValueError(f"unknown series type: {series_type!r}") from None


## 3x5 digit font, one 15-bit pattern per glyph, bit = y * 3 + x
DIGIT_FONT = (0x7B6F, 0x2492, 0x73E7, 0x79E7, 0x49ED, 0x79CF, 0x7BCF, 0x4927, 0x7BEF, 0x79EF)
DIGIT_WIDTH = 3
DIGIT_HEIGHT = 5
DIGIT_PITCH = 4


def paint_digit(image: Image.Image, x: int, y: int, digit: int, color: int = Color.BLACK) -> None:
    pattern = DIGIT_FONT[digit]
    for yd in range(DIGIT_HEIGHT):
        for xd in range(DIGIT_WIDTH):
            if pattern & (1 << (yd * DIGIT_WIDTH + xd)):
                image.putpixel((x + xd, y + yd), int(color))


def paint_number(image: Image.Image, x: int, y: int, number: int, color: int = Color.BLACK) -> None:
    """Paint a non-negative integer left to right without leading zeros."""
    if number < 0:
        raise ValueError("only non-negative numbers can be painted")
    if number == 0:
        paint_digit(image, x, y, 0, color)
        return
    for offset, char in enumerate(str(number)):
        paint_digit(image, x + offset * DIGIT_PITCH, y, int(char), color)


def create_grid(layout: GridLayout) -> Image.Image:
    """Return a new indexed image with frame, ticks, axis numbers and cursor 0."""

    width, height = layout.width, layout.height
    lb, rb, tb, bb = layout.lborder, layout.rborder, layout.tborder, layout.bborder

    image = Image.new("P", (width, height), color=int(Color.BLACK))
    image.putpalette(palette_bytes())
    draw = ImageDraw.Draw(image)

    # frame, border background and plot area
    draw.rectangle((0, 0, width - 1, height - 1), outline=int(Color.BLACK))
    draw.rectangle((1, 1, width - 2, height - 2), fill=int(Color.BORDER))
    draw.rectangle((lb, tb, width - rb - 1, height - bb - 1), fill=int(Color.CLEAR))

    ticks = int(Color.TICKS)

    # x ticks: minor, major, numbered
    for x in range(0, layout.xmax, layout.xgrid):
        image.putpixel((x + lb, tb - 1), ticks)
        image.putpixel((x + lb, height - bb), ticks)
    for x in range(0, layout.xmax, layout.xgrid * 12):
        image.putpixel((x + lb, tb - 3), ticks)
        image.putpixel((x + lb, height - bb + 2), ticks)
    for x in range(0, layout.xmax, layout.xgrid * 6):
        paint_number(image, x + lb - 1, 2, x // layout.xdiv)
        image.putpixel((x + lb, tb - 2), ticks)
        image.putpixel((x + lb, height - bb + 1), ticks)

    # y ticks: minor, major, numbered
    for y in range(0, layout.ymax, layout.ygrid):
        image.putpixel((lb - 1, y + tb), ticks)
        image.putpixel((width - rb, y + tb), ticks)
    for y in range(0, layout.ymax, layout.ygrid * 10):
        image.putpixel((lb - 3, y + tb), ticks)
        image.putpixel((width - rb + 2, y + tb), ticks)
    for y in range(0, layout.ymax, layout.ygrid * 2):
        paint_number(image, 2, y + tb - 1, y // layout.ydiv)
        image.putpixel((lb - 2, y + tb), ticks)
        image.putpixel((width - rb + 1, y + tb), ticks)

    if layout.counter_keyed:
        # counter scale: column index at the bottom, first counter of the row at the right
        for x in range(0, layout.xmax, layout.xgrid * 6):
            paint_number(image, x + lb - 1, height - bb + 4, x)
        for y in range(0, layout.ymax, layout.ygrid * 2):
            paint_number(image, width - rb + 4, y + tb - 1, y * layout.xmax)

    for bit in range(CURSOR_BITS):
        image.putpixel((bit, 0), int(Color.CURSOR_0))
    image.putpixel((INITIALIZED_FLAG_COLUMN, 0), int(Color.BLACK))

    logger.debug("Created %dx%d grid for %s", width, height, layout.name)
    return image
