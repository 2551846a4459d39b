"""Rebuild a device's bitmap history from its raw uplink logs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from pydantic import ValidationError

from .bitmap import CURSOR_MAX, BitmapSeries, series_path
from .codec import level_slot, status_color, update
from .errors import CorruptLog, InvalidReading
from .eventlog import EventLog, LogEntry
from .layout import LAYOUTS, Color, GridLayout
from .schemas import Uplink
from .status import normalize
from .utils import validate_device_id

logger = logging.getLogger(__name__)


def _uplink(entry: LogEntry) -> Uplink:
    try:
        return Uplink.model_validate(entry.content)
    except ValidationError as exc:
        raise CorruptLog("JSON has invalid field types", path=str(entry.path), line_no=entry.line_no) from exc


def collect_counters(entries) -> dict[int, Color]:
    """Map frame counters to heartbeat colors; entries without a counter are skipped."""
    values: dict[int, Color] = {}
    for entry in entries:
        counter = _uplink(entry).frame_counter
        if counter is None:
            logger.debug("%s:%d has no counter (skip)", entry.path, entry.line_no)
            continue
        if not 0 <= counter <= CURSOR_MAX:
            raise CorruptLog(f"counter {counter} out of range", path=str(entry.path), line_no=entry.line_no)
        values[counter] = Color.RECEIVED_OK
    return values


def collect_levels(entries, threshold: int | None) -> dict[int, Color]:
    """Map 15-minute buckets to status colors; the last entry per bucket wins."""
    values: dict[int, Color] = {}
    for entry in entries:
        payload = _uplink(entry).payload
        if payload is None or payload.box is None:
            raise CorruptLog("JSON doesn't contain 'box'", path=str(entry.path), line_no=entry.line_no)
        if payload.sensor is None:
            raise CorruptLog("JSON doesn't contain 'sensor'", path=str(entry.path), line_no=entry.line_no)
        slot = level_slot(entry.received)
        if not 0 <= slot <= CURSOR_MAX:
            raise CorruptLog(
                f"receipt time {entry.received!r} out of range", path=str(entry.path), line_no=entry.line_no
            )
        try:
            status = normalize(payload.sensor, payload.box, threshold)
        except InvalidReading as exc:
            raise CorruptLog(str(exc), path=str(entry.path), line_no=entry.line_no) from exc
        values[slot] = status_color(status)
    return values


class Backfiller:
    """Create missing series files and replay history into empty ones."""

    def __init__(
        self,
        datadir: Path,
        thresholds: Mapping[str, int] | None = None,
        layouts: Mapping[str, GridLayout] | None = None,
    ):
        self.datadir = Path(datadir)
        self.thresholds = dict(thresholds or {})
        self.layouts = dict(layouts or LAYOUTS)
        self.log = EventLog(self.datadir)

    def backfill(self, device_id: str, layout: GridLayout) -> int:
        """Replay all logged uplinks of *device_id* into its *layout* series.

        The whole history is parsed before the grid is touched and the file
        is saved once at the end, so a failure leaves it unchanged. Returns the
        number of slots replayed.
        """

        device_id = validate_device_id(device_id)
        entries = list(self.log.entries(device_id))
        if layout.counter_keyed:
            values = collect_counters(entries)
        else:
            values = collect_levels(entries, self.thresholds.get(device_id))

        path = series_path(self.datadir, device_id, layout.name)
        series, _ = BitmapSeries.open_or_create(path, layout)
        if not values:
            logger.debug("No history found for %s/%s", device_id, layout.name)
            return 0

        working = series.copy()
        for slot in sorted(values):
            update(working, slot, values[slot])
        working.save(path)
        logger.info(
            "Backfilled %s for %s from %d log entries (cursor=%d)",
            layout.name,
            device_id,
            len(values),
            working.read_cursor(),
        )
        return len(values)

    def init_device(self, device_id: str) -> dict[str, bool]:
        """Ensure both series exist; backfill any that were never written.

        Returns which series types were backfilled.
        """

        device_id = validate_device_id(device_id)
        result: dict[str, bool] = {}
        for series_type, layout in self.layouts.items():
            path = series_path(self.datadir, device_id, series_type)
            series, created = BitmapSeries.open_or_create(path, layout)
            if series.is_initialized:
                logger.debug("%s already has value %d", path, series.read_cursor())
                result[series_type] = False
                continue
            if not created:
                logger.debug("%s exists but is empty", path)
            result[series_type] = self.backfill(device_id, layout) > 0
        return result
