"""Notifications for filled/emptied edges."""

from __future__ import annotations

import logging
import os
import re
import smtplib
import ssl
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Mapping, Protocol, Sequence

from .status import BoxStatus
from .utils import env_bool

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^([0-9a-z.\-+_]+@[0-9a-z.\-]+)(;[a-z]{2})?$")

TRANSLATIONS: dict[str, dict[str, str]] = {
    "de": {
        "letterbox": "Briefkasten",
        "boxstatus": "Briefkastenstatus",
        "filled": "GEFÜLLT",
        "emptied": "GELEERT",
        "at": "am",
    },
}

# 00:00, 00:30, ... 11:30
CLOCK_ICONS = (
    "🕛", "🕧", "🕐", "🕜", "🕑", "🕝",
    "🕒", "🕞", "🕓", "🕟", "🕔", "🕠",
    "🕕", "🕡", "🕖", "🕢", "🕗", "🕣",
    "🕘", "🕤", "🕙", "🕥", "🕚", "🕦",
)
# night, sunrise, day, sunset
DAY_ICONS = ("🌆", "🌅", "🌞", "🌇")
STATUS_ICONS = {BoxStatus.FILLED: "📬", BoxStatus.EMPTIED: "📪"}


@dataclass(frozen=True)
class EdgeEvent:
    """A box that just became full or empty."""

    device_id: str
    status: BoxStatus
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    alias: str | None = None
    recipients: tuple[str, ...] | None = None


class Notifier(Protocol):
    def notify(self, event: EdgeEvent) -> None:
        ...


@dataclass
class SMTPSettings:
    host: str
    port: int
    use_ssl: bool
    use_starttls: bool
    user: str
    password: str
    from_addr: str
    to_addrs: list[str]
    timeout: int
    debug: bool


def split_addresses(raw: str | None, separator: str = ",") -> list[str]:
    if not raw:
        return []
    return [addr.strip() for addr in raw.split(separator) if addr.strip()]


def load_smtp_settings() -> SMTPSettings:
    """Load SMTP settings from the environment with local-relay defaults."""

    return SMTPSettings(
        host=os.getenv("SMTP_HOST", "localhost"),
        port=int(os.getenv("SMTP_PORT", "25")),
        use_ssl=env_bool("SMTP_USE_SSL", False),
        use_starttls=env_bool("SMTP_USE_STARTTLS", False),
        user=os.getenv("SMTP_USER", ""),
        password=os.getenv("SMTP_PASSWORD", ""),
        from_addr=os.getenv("SMTP_FROM", ""),
        to_addrs=split_addresses(os.getenv("SMTP_TO")),
        timeout=int(os.getenv("SMTP_TIMEOUT", "15")),
        debug=env_bool("SMTP_DEBUG", False),
    )


def translate(word: str, language: str | None) -> str:
    if not language:
        return word
    return TRANSLATIONS.get(language, {}).get(word, word)


def time_icons(when: datetime) -> str:
    """Part-of-day icon followed by the nearest half-hour clock face."""
    local = when.astimezone()
    hour, minute = local.hour, local.minute
    index_day = 0
    if hour >= 6:
        index_day += 1
    if hour >= 8:
        index_day += 1
    if hour >= 18:
        index_day += 1
    if hour >= 20:
        index_day = 0
    index_clock = ((hour % 12) * 60 + minute) // 30
    return DAY_ICONS[index_day] + CLOCK_ICONS[index_clock]


def format_subject(event: EdgeEvent, language: str | None = None) -> str:
    when = event.received_at.astimezone().strftime("%Y-%m-%d %H:%M %Z")
    icons = STATUS_ICONS.get(event.status, "") + " " + time_icons(event.received_at)
    name = event.alias or event.device_id
    return (
        f"{translate('letterbox', language)} {icons} {name} "
        f"{translate(event.status.value, language)} {translate('at', language)} {when}"
    )


def format_body(event: EdgeEvent, language: str | None = None) -> str:
    sensor = f"{event.alias} ({event.device_id})" if event.alias else event.device_id
    parts = [
        f"Sensor: {sensor}",
        f"{translate('boxstatus', language)}: {translate(event.status.value, language)}",
        f"{translate('at', language)}: {event.received_at.astimezone().strftime('%Y-%m-%d %H:%M:%S %Z')}",
    ]
    return "\n".join(parts)


def parse_recipient(entry: str) -> tuple[str, str | None] | None:
    """Split ``address[;lang]`` into address and optional language."""
    match = _ADDRESS_RE.match(entry.strip().lower())
    if not match:
        return None
    language = match.group(2)[1:] if match.group(2) else None
    return match.group(1), language


def _open_smtp_connection(settings: SMTPSettings) -> smtplib.SMTP:
    context = ssl.create_default_context()
    if settings.use_ssl:
        server: smtplib.SMTP = smtplib.SMTP_SSL(
            settings.host, settings.port, timeout=settings.timeout, context=context
        )
    else:
        server = smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout)

    if settings.debug:
        server.set_debuglevel(1)

    server.ehlo()
    if settings.use_starttls and not settings.use_ssl:
        server.starttls(context=context)
        server.ehlo()

    if settings.user and settings.password:
        server.login(settings.user, settings.password)

    return server


class EmailNotifier:
    """Send one e-mail per recipient when a box was filled or emptied.

    Without ``enabled`` the notifier only logs what it would send.
    """

    def __init__(
        self,
        settings: SMTPSettings,
        recipients: Mapping[str, Sequence[str]] | None = None,
        *,
        enabled: bool = False,
    ):
        self.settings = settings
        self.recipients = {device: list(addrs) for device, addrs in (recipients or {}).items()}
        self.enabled = enabled

    def _recipients_for(self, event: EdgeEvent) -> list[tuple[str, str | None]]:
        raw = list(event.recipients or self.recipients.get(event.device_id) or self.settings.to_addrs)
        parsed: list[tuple[str, str | None]] = []
        seen: set[str] = set()
        for entry in raw:
            if not isinstance(entry, str):
                continue
            recipient = parse_recipient(entry)
            if recipient is None:
                logger.warning("Notification receiver is not a valid e-mail address (skip): %s", entry)
                continue
            if recipient[0] in seen:
                continue
            seen.add(recipient[0])
            parsed.append(recipient)
        return parsed

    def notify(self, event: EdgeEvent) -> None:
        if not event.status.is_edge:
            return
        recipients = self._recipients_for(event)
        if not recipients:
            logger.debug("No notification recipients for %s", event.device_id)
            return
        if not self.enabled:
            for address, _ in recipients:
                logger.info("Would send e-mail to (if enabled): %s", address)
            return
        self._send_all(event, recipients)

    def _send_all(self, event: EdgeEvent, recipients: Sequence[tuple[str, str | None]]) -> None:
        try:
            server = _open_smtp_connection(self.settings)
        except Exception:
            logger.exception("Failed to open SMTP connection")
            return

        try:
            for address, language in recipients:
                try:
                    msg = EmailMessage()
                    msg["From"] = self.settings.from_addr
                    msg["To"] = address
                    msg["Subject"] = format_subject(event, language)
                    msg.set_content(format_body(event, language))
                    server.send_message(msg)
                    logger.info("Notification sent: %s/%s/%s", event.device_id, event.status.value, address)
                except Exception:
                    logger.exception("Failed to send notification for %s to %s", event.device_id, address)
        finally:
            try:
                server.quit()
            except Exception:
                logger.exception("Failed to close SMTP connection")
