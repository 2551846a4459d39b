"""Edge detection between full and empty box levels.

The tracker keeps no state in memory. Each device has two marker files,
``ttn.<device>.filled.time`` and ``ttn.<device>.emptied.time``, holding the
Unix time of the last transition in that direction. A level report is an
edge when the marker of its own direction is older than the other one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from .status import BoxStatus
from .utils import validate_device_id, write_atomic

logger = logging.getLogger(__name__)


class LevelState(str, Enum):
    FULL = "full"
    EMPTY = "empty"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Classification:
    status: BoxStatus
    is_edge: bool


class StateTracker:
    """Classify level reports into plain levels or filled/emptied edges."""

    def __init__(self, datadir: Path):
        self.datadir = Path(datadir)

    def marker_path(self, device_id: str, edge: BoxStatus) -> Path:
        return self.datadir / f"ttn.{device_id}.{edge.value}.time"

    def _read_marker(self, device_id: str, edge: BoxStatus) -> float | None:
        path = self.marker_path(device_id, edge)
        if not path.exists():
            return None
        raw = path.read_text(encoding="utf-8").strip()
        try:
            return float(raw)
        except ValueError:
            logger.warning("Ignoring unreadable marker %s: %r", path, raw)
            return None

    def _write_marker(self, device_id: str, edge: BoxStatus, when: datetime) -> None:
        write_atomic(self.marker_path(device_id, edge), f"{when.timestamp():.6f}\n".encode("ascii"))

    def previous_level(self, device_id: str) -> LevelState:
        filled = self._read_marker(device_id, BoxStatus.FILLED)
        emptied = self._read_marker(device_id, BoxStatus.EMPTIED)
        if filled is None and emptied is None:
            return LevelState.UNKNOWN
        if emptied is None or (filled is not None and filled >= emptied):
            return LevelState.FULL
        return LevelState.EMPTY

    def classify(
        self,
        device_id: str,
        current_level: BoxStatus,
        now: datetime | None = None,
    ) -> Classification:
        device_id = validate_device_id(device_id)
        level = BoxStatus.parse(current_level).level
        when = now or datetime.now(timezone.utc)

        own_edge = level.edge
        other_edge = BoxStatus.EMPTIED if own_edge is BoxStatus.FILLED else BoxStatus.FILLED
        own_ts = self._read_marker(device_id, own_edge)
        other_ts = self._read_marker(device_id, other_edge)

        if own_ts is None and other_ts is None:
            self._write_marker(device_id, own_edge, when)
            logger.info("Initialized %s marker for device %s", own_edge.value, device_id)
            return Classification(level, False)

        if other_ts is not None and (own_ts is None or own_ts < other_ts):
            self._write_marker(device_id, own_edge, when)
            logger.info("Device %s %s", device_id, own_edge.value)
            return Classification(own_edge, True)

        return Classification(level, False)
