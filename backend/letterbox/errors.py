"""Exception taxonomy shared by ingestion, the bitmap codec and backfill."""

from __future__ import annotations


class LetterboxError(Exception):
    """Base class for all letterbox errors."""


class InvalidReading(LetterboxError, ValueError):
    """A single sample is malformed; it is rejected before any state changes."""


class CorruptLog(LetterboxError):
    """A raw log line is not valid JSON or lacks a required field."""

    def __init__(self, message: str, *, path: str | None = None, line_no: int | None = None):
        location = ""
        if path is not None:
            location = f" ({path}" + (f":{line_no}" if line_no is not None else "") + ")"
        super().__init__(f"{message}{location}")
        self.path = path
        self.line_no = line_no


class UnparseableTimestamp(LetterboxError, ValueError):
    """A receipt timestamp cannot be converted to Unix time."""

    def __init__(self, value: object):
        super().__init__(f"cannot parse time: {value!r}")
        self.value = value


class SeriesFileMissing(LetterboxError, FileNotFoundError):
    """A bitmap series file does not exist yet."""

    def __init__(self, path: str):
        super().__init__(f"series file missing: {path}")
        self.path = path
