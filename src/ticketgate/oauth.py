"""OAuth2 session with the ticketing platform.

:class:`TokenStore` owns the only copy of the access/refresh token pair.
Callers ask it for a valid token; it refreshes transparently when the
current one is absent or about to expire.  Refreshes are single-flight:
concurrent callers share one in-flight token request and all receive its
result (or its error).
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlencode

from ticketgate._constants import DEFAULT_REFRESH_MARGIN
from ticketgate._redact import mask_secret, redact_for_log
from ticketgate._transport import Transport
from ticketgate.config import OAuth2Settings
from ticketgate.exceptions import AuthError, RemoteError
from ticketgate.models.token import Token

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenStore:
    """Holds the OAuth2 token pair and hands out valid access tokens.

    Usage::

        store = TokenStore(settings, transport)
        print(store.authorization_url())      # operator authorizes once
        await store.exchange_code(code, state)  # from the callback
        token = await store.get_valid_token()
    """

    def __init__(
        self,
        settings: OAuth2Settings,
        transport: Transport,
        *,
        refresh_margin: float = DEFAULT_REFRESH_MARGIN,
        clock: Callable[[], datetime] = _utcnow,
        on_token: Callable[[Token], None] | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._on_token = on_token
        self._token: Token | None = None
        self._refresh_value: str | None = settings.refresh_token
        self._csrf_state: str | None = None
        self._exchange_lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[Token] | None = None
        self.refresh_count = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def token(self) -> Token | None:
        """Current token, possibly expired.  Read-only."""
        return self._token

    @property
    def is_authorized(self) -> bool:
        """Whether a token or refresh credential is available."""
        return self._token is not None or self._refresh_value is not None

    # ------------------------------------------------------------------
    # Authorization-code flow
    # ------------------------------------------------------------------

    def authorization_url(self) -> str:
        """Build the URL the operator opens to authorize the gateway.

        Each call issues a new CSRF ``state``; only the latest one is
        accepted by :meth:`exchange_code`.
        """
        self._csrf_state = secrets.token_urlsafe(24)
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self._settings.client_id,
                "redirect_uri": self._settings.redirect_url,
                "state": self._csrf_state,
            }
        )
        return f"{self._settings.auth_url}?{query}"

    async def exchange_code(self, code: str, state: str) -> Token:
        """Exchange the authorization *code* received on the callback.

        The pending ``state`` is consumed before the exchange, so a code
        is accepted exactly once.

        Raises
        ------
        AuthError
            Unknown or reused ``state``, or the token endpoint refused the
            code.
        """
        async with self._exchange_lock:
            expected = self._csrf_state
            if expected is None or not secrets.compare_digest(expected, state):
                raise AuthError("OAuth2 callback state does not match a pending authorization")
            self._csrf_state = None
            token = await self._request_token(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self._settings.redirect_url,
                },
                previous_refresh=None,
            )
        self._store(token)
        _logger.info("Authorization code exchanged, token expires at %s", token.expires_at)
        return token

    # ------------------------------------------------------------------
    # Token access
    # ------------------------------------------------------------------

    async def get_valid_token(self) -> Token:
        """Return a token valid for at least ``refresh_margin`` seconds.

        Raises
        ------
        AuthError
            No credential is available or the refresh failed.
        """
        token = self._token
        if token is not None and not token.expires_within(self._refresh_margin, now=self._clock()):
            return token
        return await self._refresh_once()

    async def force_refresh(self, stale: Token | None) -> Token:
        """Refresh because the API rejected *stale*.

        If the current token is no longer *stale* (another caller already
        replaced it) the current token is returned without a new request.
        """
        current = self._token
        if (
            current is not None
            and current is not stale
            and not current.expires_within(self._refresh_margin, now=self._clock())
        ):
            return current
        return await self._refresh_once()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _refresh_once(self) -> Token:
        task = self._refresh_task
        if task is None:
            task = asyncio.get_running_loop().create_task(self._refresh())
            self._refresh_task = task
            task.add_done_callback(self._refresh_done)
        # Shielded so one cancelled caller does not abort the shared refresh.
        return await asyncio.shield(task)

    def _refresh_done(self, task: asyncio.Task[Token]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # Mark the exception retrieved even if every waiter went away.
            task.exception()

    async def _refresh(self) -> Token:
        refresh_value = self._refresh_value
        if refresh_value is None:
            raise AuthError("No OAuth2 refresh token available; authorization required")
        _logger.debug("Refreshing access token with refresh token %s", mask_secret(refresh_value))
        token = await self._request_token(
            {"grant_type": "refresh_token", "refresh_token": refresh_value},
            previous_refresh=refresh_value,
        )
        self.refresh_count += 1
        self._store(token)
        _logger.info("Access token refreshed, expires at %s", token.expires_at)
        return token

    async def _request_token(self, grant: dict[str, str], *, previous_refresh: str | None) -> Token:
        form = {
            **grant,
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
        }
        try:
            status, body = await self._transport.post_form(self._settings.token_url, form)
        except RemoteError as exc:
            raise AuthError(f"Token request failed: {exc}") from exc

        payload: dict[str, Any] = body if isinstance(body, dict) else {}
        if not 200 <= status < 300:
            error = payload.get("error_description") or payload.get("error") or "unknown error"
            _logger.debug("Token endpoint error response: %s", redact_for_log(payload))
            raise AuthError(f"Token endpoint returned HTTP {status}: {error}")
        if not payload.get("access_token"):
            raise AuthError("Token endpoint response is missing access_token")

        return Token.from_response(payload, previous_refresh=previous_refresh, now=self._clock())

    def _store(self, token: Token) -> None:
        self._token = token
        if token.refresh_value is not None:
            self._refresh_value = token.refresh_value
        if self._on_token is not None:
            self._on_token(token)
