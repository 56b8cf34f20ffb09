"""Custom exception hierarchy for ticketgate."""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for all ticketgate errors."""


class ConfigError(GatewayError):
    """Invalid or missing configuration."""


class RemoteError(GatewayError):
    """HTTP-level failure (network, timeout, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class AuthError(GatewayError):
    """Token missing, rejected by the API, or refresh failed.

    Fatal for the current sync pass but not for the process; a later
    trigger may succeed once the operator re-authorizes.
    """


class SyncInProgressError(GatewayError):
    """Another sync pass is already committing to the roster."""


class SyncCancelledError(GatewayError):
    """The pass was abandoned before the final commit (shutdown)."""


class RosterError(GatewayError):
    """The championship document is unreadable or malformed."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class RosterChangedError(RosterError):
    """The roster file was modified by someone else while we were updating it.

    Raised when the modification time observed before reading differs from
    the one observed right before the atomic rename.  The reconciler
    reloads and retries.
    """
