"""Error taxonomy shared by the realtime handlers."""

from __future__ import annotations


class RealtimeError(Exception):
    """Base class for in-band realtime failures.

    ``code`` is the short identifier sent to clients inside ``ack`` or
    ``rtc:error`` frames.
    """

    code = "error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class Unauthorized(RealtimeError):
    """Raised when a handshake carries no valid session."""

    code = "unauthorized"


class UpgradeRequired(RealtimeError):
    """Raised when the cached entitlement does not cover a privileged event."""

    code = "upgrade-required"


class RateLimited(RealtimeError):
    """Raised when a connection exceeds its send window."""

    code = "rate_limited"


class CooldownActive(RealtimeError):
    """Raised when a caller retries the same callee inside the cooldown."""

    code = "cooldown"

    def __init__(self, retry_after: float, message: str | None = None) -> None:
        super().__init__(message or "Call cooldown is active")
        self.retry_after = retry_after


class InvalidEvent(RealtimeError):
    """Raised for malformed inbound payloads on request-shaped events."""

    code = "invalid"


class NotMatched(RealtimeError):
    """Raised when chatting with a user who is not a mutual match."""

    code = "not_matched"


class SendDisabled(RealtimeError):
    """Raised when ``chat:send`` arrives while realtime sending is switched off."""

    code = "disabled"


class NoActiveCall(RealtimeError):
    """Raised when an answer arrives for a pair without a matching offer."""

    code = "no-call"


__all__ = [
    "RealtimeError",
    "Unauthorized",
    "UpgradeRequired",
    "RateLimited",
    "CooldownActive",
    "InvalidEvent",
    "NotMatched",
    "SendDisabled",
    "NoActiveCall",
]
