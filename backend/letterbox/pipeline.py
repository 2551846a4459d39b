"""Ingestion of a single uplink: validate, log, classify, encode, notify.

Collaborators are passed in explicitly; nothing registers itself globally.
Every call is independent and keeps no state between uplinks apart from the
files under the data directory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from . import codec
from .backfill import Backfiller
from .bitmap import CURSOR_MAX, series_path
from .errors import InvalidReading
from .eventlog import EventLog
from .layout import BOX_STATUS, LAYOUTS, RECEIVED_STATUS
from .notify import EdgeEvent, Notifier
from .schemas import StatusSample, parse_uplink, to_sample
from .status import BoxStatus, normalize
from .transitions import StateTracker
from .utils import validate_device_id

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IngestResult:
    device_id: str
    status: BoxStatus
    is_edge: bool
    counter: int | None = None
    level_cursor: int | None = None
    received_cursor: int | None = None
    backfilled: dict[str, bool] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "ok": True,
            "device_id": self.device_id,
            "status": self.status.value,
            "edge": self.is_edge,
            "counter": self.counter,
        }


class UplinkProcessor:
    def __init__(
        self,
        datadir: Path,
        *,
        thresholds: Mapping[str, int] | None = None,
        aliases: Mapping[str, str] | None = None,
        notifiers: Sequence[Notifier] = (),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.datadir = Path(datadir)
        self.thresholds = dict(thresholds or {})
        self.aliases = dict(aliases or {})
        self.notifiers = list(notifiers)
        self.clock = clock
        self.log = EventLog(self.datadir)
        self.tracker = StateTracker(self.datadir)
        self.backfiller = Backfiller(self.datadir, self.thresholds)

    def validate(self, content: Any, received_at: datetime) -> tuple[StatusSample, BoxStatus]:
        """Check the uplink completely; raises InvalidReading, writes nothing."""
        uplink = parse_uplink(content)
        device_id = validate_device_id(uplink.device_id)
        sample = to_sample(uplink, received_at=received_at, threshold=self.thresholds.get(device_id))
        status = normalize(sample.sensor, sample.box, sample.threshold)
        if sample.counter is not None and sample.counter > CURSOR_MAX:
            raise InvalidReading(f"counter {sample.counter} does not fit the series cursor")
        return sample, status

    def process(self, content: Any, received_at: datetime | None = None) -> IngestResult:
        now = received_at or self.clock()
        sample, status = self.validate(content, now)
        device_id = sample.device_id

        backfilled = self.backfiller.init_device(device_id)
        self.log.append(device_id, now, content)

        classification = self.tracker.classify(device_id, status.level, now)
        logger.debug(
            "Device %s reported %s (sensor=%d), classified %s",
            device_id,
            sample.box.value,
            sample.sensor,
            classification.status.value,
        )

        level_cursor = codec.store_level(
            series_path(self.datadir, device_id, BOX_STATUS),
            LAYOUTS[BOX_STATUS],
            now,
            classification.status,
        )
        received_cursor = None
        if sample.counter is not None:
            received_cursor = codec.store_heartbeat(
                series_path(self.datadir, device_id, RECEIVED_STATUS),
                LAYOUTS[RECEIVED_STATUS],
                sample.counter,
            )

        if classification.is_edge:
            self._notify(
                EdgeEvent(
                    device_id=device_id,
                    status=classification.status,
                    received_at=now,
                    alias=self.aliases.get(device_id),
                )
            )

        return IngestResult(
            device_id=device_id,
            status=classification.status,
            is_edge=classification.is_edge,
            counter=sample.counter,
            level_cursor=level_cursor,
            received_cursor=received_cursor,
            backfilled=backfilled,
        )

    def _notify(self, event: EdgeEvent) -> None:
        for notifier in self.notifiers:
            try:
                notifier.notify(event)
            except Exception:
                logger.exception("Notifier %s failed for %s", type(notifier).__name__, event.device_id)
