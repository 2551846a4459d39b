"""Append-only raw uplink log, one file per device and UTC day.

Each line is ``<receipt timestamp> <uplink JSON>``. The timestamp may contain
spaces; the JSON always starts at the first ``{``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from .errors import CorruptLog
from .utils import validate_device_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogEntry:
    received: str
    content: dict[str, Any]
    path: Path
    line_no: int


class EventLog:
    def __init__(self, datadir: Path):
        self.datadir = Path(datadir)

    def path_for(self, device_id: str, day: datetime) -> Path:
        stamp = day.astimezone(timezone.utc).strftime("%Y%m%d")
        return self.datadir / f"ttn.{device_id}.{stamp}.raw.log"

    def append(self, device_id: str, received_at: datetime, content: dict[str, Any]) -> Path:
        device_id = validate_device_id(device_id)
        path = self.path_for(device_id, received_at)
        path.parent.mkdir(parents=True, exist_ok=True)
        line = received_at.astimezone(timezone.utc).isoformat() + " " + json.dumps(content, separators=(",", ":"))
        with path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
        return path

    def files(self, device_id: str) -> list[Path]:
        device_id = validate_device_id(device_id)
        if not self.datadir.is_dir():
            return []
        pattern = re.compile(rf"^ttn\.{re.escape(device_id)}\.[0-9]+\.raw\.log$")
        found = [entry for entry in self.datadir.iterdir() if entry.is_file() and pattern.match(entry.name)]
        return sorted(found, key=lambda entry: entry.name)

    def entries(self, device_id: str) -> Iterator[LogEntry]:
        """Yield every logged uplink of *device_id* in file order.

        Raises CorruptLog for a line that is not UTF-8 or holds no JSON object.
        """
        for path in self.files(device_id):
            logger.debug("Reading log file %s", path)
            with path.open("rb") as fh:
                for line_no, raw in enumerate(fh, start=1):
                    try:
                        line = raw.decode("utf-8").rstrip("\r\n")
                    except UnicodeDecodeError as exc:
                        raise CorruptLog("line is not valid UTF-8", path=str(path), line_no=line_no) from exc
                    if not line.strip():
                        continue
                    yield parse_line(line, path, line_no)


def parse_line(line: str, path: Path, line_no: int) -> LogEntry:
    start = line.find("{")
    if start <= 0:
        raise CorruptLog("line not in '<timestamp> <JSON>' format", path=str(path), line_no=line_no)
    received = line[:start].strip()
    try:
        content = json.loads(line[start:])
    except json.JSONDecodeError as exc:
        raise CorruptLog("line not in JSON format", path=str(path), line_no=line_no) from exc
    if not isinstance(content, dict):
        raise CorruptLog("line does not hold a JSON object", path=str(path), line_no=line_no)
    return LogEntry(received=received, content=content, path=path, line_no=line_no)
