"""Runtime settings read from the environment (and an optional ``.env``)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .notify import split_addresses
from .utils import env_bool, split_mapping

load_dotenv(Path(__file__).resolve().parent / ".env")

logger = logging.getLogger(__name__)

DEFAULT_DATADIR = "/var/lib/ttn-letterbox"


def _int_mapping(raw: str | None, name: str) -> dict[str, int]:
    result: dict[str, int] = {}
    for key, value in split_mapping(raw).items():
        try:
            parsed = int(value)
        except ValueError:
            logger.warning("Ignoring invalid %s entry for '%s': %r", name, key, value)
            continue
        if parsed < 0:
            logger.warning("Ignoring negative %s entry for '%s': %d", name, key, parsed)
            continue
        result[key] = parsed
    return result


@dataclass
class Settings:
    datadir: Path
    thresholds: dict[str, int] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)
    recipients: dict[str, list[str]] = field(default_factory=dict)
    auth_token: str | None = None
    notify_enabled: bool = False
    render_scale: int | None = None
    log_level: str = "INFO"

    def threshold_for(self, device_id: str) -> int | None:
        return self.thresholds.get(device_id)

    def alias_for(self, device_id: str) -> str | None:
        return self.aliases.get(device_id)


def load_settings() -> Settings:
    """Build :class:`Settings` from ``LETTERBOX_*`` environment variables."""

    scale_raw = os.getenv("LETTERBOX_RENDER_SCALE")
    return Settings(
        datadir=Path(os.getenv("LETTERBOX_DATADIR", DEFAULT_DATADIR)),
        thresholds=_int_mapping(os.getenv("LETTERBOX_THRESHOLDS"), "threshold"),
        aliases=split_mapping(os.getenv("LETTERBOX_ALIASES")),
        recipients={
            device: split_addresses(addrs, "|")
            for device, addrs in split_mapping(os.getenv("LETTERBOX_RECIPIENTS")).items()
        },
        auth_token=os.getenv("LETTERBOX_AUTH_TOKEN") or None,
        notify_enabled=env_bool("LETTERBOX_NOTIFY_ENABLE", False),
        render_scale=int(scale_raw) if scale_raw else None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
