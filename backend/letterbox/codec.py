"""Update rules for the heartbeat and level bitmap series.

Heartbeat grids are keyed by the uplink counter: skipped counters are painted
as gaps. Level grids are keyed by 15-minute buckets of the receipt time:
skipped buckets carry the new status forward. Both clear the three rows of
slots ahead of the cursor so a previous lap around the ring buffer does not
look current. Pixel writes happen first; the cursor is written last.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .bitmap import CURSOR_MAX, BitmapSeries
from .errors import InvalidReading
from .layout import STATUS_COLORS, Color, GridLayout
from .status import BoxStatus
from .utils import unix_seconds

logger = logging.getLogger(__name__)

LEVEL_SLOT_SECONDS = 15 * 60
CLEAR_AHEAD_ROWS = 3


def level_slot(received_at: object) -> int:
    """Return the 15-minute bucket index of a receipt time."""
    return unix_seconds(received_at) // LEVEL_SLOT_SECONDS


def status_color(status: BoxStatus | str) -> Color:
    return STATUS_COLORS[BoxStatus.parse(status)]


def _check_slot(slot: object) -> int:
    if isinstance(slot, bool) or not isinstance(slot, int) or not 0 <= slot <= CURSOR_MAX:
        raise InvalidReading(f"slot index must fit in 32 bits, got {slot!r}")
    return slot


def update(
    series: BitmapSeries,
    slot: int,
    color: Color | None = None,
    prior_cursor: int | None = None,
) -> int:
    """Write one observation into *series* in memory and return the new cursor.

    *color* is ignored for heartbeat series (always OK) and required for
    level series. *prior_cursor* defaults to the cursor stored in the grid.
    """

    layout = series.layout
    slot = _check_slot(slot)
    if not layout.counter_keyed and color is None:
        raise InvalidReading("level series update requires a status color")

    prior = series.read_cursor() if prior_cursor is None else prior_cursor
    initialized = series.is_initialized

    # fills never need more than one lap of the ring buffer
    if layout.counter_keyed:
        if initialized and slot > prior + 1:
            for gap in range(max(prior + 1, slot - layout.slots), slot):
                series.plot(gap, Color.RECEIVED_GAP)
            logger.debug("%s: painted %d gap slots before %d", layout.name, slot - prior - 1, slot)
        series.plot(slot, Color.RECEIVED_OK)
    else:
        series.plot(slot, color)
        if initialized and slot - 1 > prior:
            for gap in range(max(prior + 1, slot - layout.slots), slot):
                series.plot(gap, color)
            logger.debug("%s: carried %s over %d slots", layout.name, Color(color).name, slot - prior - 1)

    cursor = max(prior, slot) if initialized else slot
    _clear_ahead(series, cursor)

    series.write_cursor(cursor)
    series.mark_initialized()
    logger.debug("%s: stored=%d new=%d cursor=%d", layout.name, prior, slot, cursor)
    return cursor


def _clear_ahead(series: BitmapSeries, cursor: int) -> None:
    span = series.layout.xmax * CLEAR_AHEAD_ROWS
    for slot in range(cursor + 1, cursor + 1 + span):
        series.plot(slot, Color.CLEAR)


def store(path: Path, layout: GridLayout, slot: int, color: Color | None = None) -> int:
    """Load the series at *path* (creating it if needed), update and flush it."""

    series, _ = BitmapSeries.open_or_create(path, layout)
    cursor = update(series, slot, color)
    series.save()
    return cursor


def store_heartbeat(path: Path, layout: GridLayout, counter: int) -> int:
    return store(path, layout, counter)


def store_level(path: Path, layout: GridLayout, received_at: object, status: BoxStatus | str) -> int:
    return store(path, layout, level_slot(received_at), status_color(status))
