import hmac
from typing import Mapping, Protocol

AUTH_HEADER = "X-TTN-AUTH"


class AuthChecker(Protocol):
    def check(self, device_id: str, headers: Mapping[str, str]) -> bool:
        ...


class SharedSecretAuth:
    """Accept uplinks carrying the configured secret in ``X-TTN-AUTH``.

    With no secret configured every request is accepted.
    """

    def __init__(self, token: str | None):
        self.token = token

    def check(self, device_id: str, headers: Mapping[str, str]) -> bool:
        if not self.token:
            return True
        supplied = headers.get(AUTH_HEADER) or headers.get(AUTH_HEADER.lower()) or ""
        return hmac.compare_digest(supplied.encode("utf-8"), self.token.encode("utf-8"))
