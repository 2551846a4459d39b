"""Box status values and the sensor threshold normalizer."""

from __future__ import annotations

from enum import Enum

from .errors import InvalidReading


class BoxStatus(str, Enum):
    FULL = "full"
    EMPTY = "empty"
    FILLED = "filled"
    EMPTIED = "emptied"

    @classmethod
    def parse(cls, value: object) -> "BoxStatus":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidReading(f"unknown box status: {value!r}")

    @property
    def level(self) -> "BoxStatus":
        """Collapse an edge status to the level it transitioned into."""
        if self is BoxStatus.FILLED:
            return BoxStatus.FULL
        if self is BoxStatus.EMPTIED:
            return BoxStatus.EMPTY
        return self

    @property
    def is_edge(self) -> bool:
        return self in (BoxStatus.FILLED, BoxStatus.EMPTIED)

    @property
    def edge(self) -> "BoxStatus":
        """Return the edge status that leads into this level."""
        return BoxStatus.FILLED if self.level is BoxStatus.FULL else BoxStatus.EMPTIED


def validate_level(value: object, field_name: str = "sensor") -> int:
    # bool is an int subclass but never a valid reading
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidReading(f"{field_name} must be a non-negative integer, got {value!r}")
    return value


def normalize(raw_level: object, raw_tag: object, threshold: object | None = None) -> BoxStatus:
    """Return the box status for a report, honouring a per-device threshold.

    Without a threshold the reported tag is trusted. With one, the sensor
    reading decides the level; a reported edge status survives only when it
    agrees with that level, otherwise it is downgraded to the plain level.
    """

    level = validate_level(raw_level)
    status = BoxStatus.parse(raw_tag)
    if threshold is None:
        return status

    limit = validate_level(threshold, "threshold")
    measured = BoxStatus.FULL if level >= limit else BoxStatus.EMPTY
    if status.level is measured:
        return status
    return measured
