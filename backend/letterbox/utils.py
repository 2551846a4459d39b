import os
import re
from datetime import datetime, timezone
from pathlib import Path

from .errors import InvalidReading, UnparseableTimestamp

_DEVICE_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")
_ZONE_SUFFIXES = (" UTC", " GMT", "UTC", "GMT")


def validate_device_id(device_id: object) -> str:
    value = str(device_id or "").strip()
    if not _DEVICE_ID_RE.match(value):
        raise InvalidReading(f"invalid device id: {device_id!r}")
    return value


def parse_timestamp(value: object) -> datetime:
    """Parse a receipt timestamp into an aware UTC datetime."""

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            raise UnparseableTimestamp(value)
        for suffix in _ZONE_SUFFIXES:
            if cleaned.endswith(suffix):
                cleaned = cleaned[: -len(suffix)] + "+00:00"
                break
        if cleaned[-1] in {"z", "Z"}:
            cleaned = cleaned[:-1] + "+00:00"
        if " " in cleaned and "T" not in cleaned:
            cleaned = cleaned.replace(" ", "T", 1)
        # TTN reports nanoseconds; datetime keeps microseconds
        cleaned = _FRACTION_RE.sub(r"\1", cleaned)
        try:
            dt = datetime.fromisoformat(cleaned)
        except ValueError as exc:
            raise UnparseableTimestamp(value) from exc
    else:
        raise UnparseableTimestamp(value)

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def unix_seconds(value: object) -> int:
    return int(parse_timestamp(value).timestamp())


def write_atomic(path: Path, data: bytes) -> None:
    """Replace *path* with *data*, flushed to disk before returning."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with tmp_path.open("wb") as fh:
        fh.write(data)
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(tmp_path, path)


def split_mapping(raw: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` strings used by the environment settings."""

    if not raw:
        return {}
    result: dict[str, str] = {}
    for item in raw.split(","):
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        result[key] = value.strip()
    return result


def env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}
