from functools import lru_cache

from .auth import AuthChecker, SharedSecretAuth
from .config import Settings, load_settings
from .notify import EmailNotifier, load_smtp_settings
from .pipeline import UplinkProcessor
from .render import GraphicsProvider


@lru_cache
def get_settings() -> Settings:
    return load_settings()


def get_processor() -> UplinkProcessor:
    settings = get_settings()
    notifier = EmailNotifier(
        load_smtp_settings(),
        settings.recipients,
        enabled=settings.notify_enabled,
    )
    return UplinkProcessor(
        settings.datadir,
        thresholds=settings.thresholds,
        aliases=settings.aliases,
        notifiers=[notifier],
    )


def get_auth() -> AuthChecker:
    return SharedSecretAuth(get_settings().auth_token)


def get_graphics() -> GraphicsProvider:
    settings = get_settings()
    return GraphicsProvider(settings.datadir, scale=settings.render_scale)
