"""HTTP transport for the ticketing platform and its OAuth2 token endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from ticketgate._constants import USER_AGENT
from ticketgate._redact import redact_for_log
from ticketgate.exceptions import AuthError, RemoteError

_logger = logging.getLogger(__name__)

_AUTH_REJECTED_STATUSES: frozenset[int] = frozenset({401, 403})


class Transport(Protocol):
    """Structural transport interface used by the fetcher and the token store.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`HttpTransport`) concrete.
    """

    async def get_json(
        self,
        url: str,
        *,
        bearer: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        ...

    async def post_form(self, url: str, form: Mapping[str, str]) -> tuple[int, Any]:
        ...


class HttpTransport:
    """aiohttp-backed transport with a bounded timeout on every request."""

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def get_json(
        self,
        url: str,
        *,
        bearer: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """GET *url* with a bearer token and return the decoded JSON body.

        Raises
        ------
        AuthError
            The API rejected the token (HTTP 401/403).
        RemoteError
            Network failure, timeout, any other non-2xx status or a body
            that is not JSON.
        """
        headers = {
            "accept": "application/json",
            "authorization": f"Bearer {bearer}",
            "user-agent": USER_AGENT,
        }
        _logger.debug("GET %s params=%s", url, dict(params or {}))

        try:
            async with self._http.get(url, params=params, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                status = resp.status
        except TimeoutError as exc:
            raise RemoteError(f"Request to {url} timed out", endpoint=url) from exc
        except aiohttp.ClientError as exc:
            raise RemoteError(f"Request to {url} failed: {exc}", endpoint=url) from exc

        if status in _AUTH_REJECTED_STATUSES:
            raise AuthError(f"HTTP {status} from {url}: token rejected")
        if not 200 <= status < 300:
            raise RemoteError(
                f"HTTP {status} from {url}: {text[:200]}",
                status_code=status,
                endpoint=url,
            )

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise RemoteError(
                f"Invalid JSON from {url}: {text[:200]}",
                status_code=status,
                endpoint=url,
            ) from exc

    async def post_form(self, url: str, form: Mapping[str, str]) -> tuple[int, Any]:
        """POST a urlencoded *form* and return ``(status, decoded_json)``.

        Unlike :meth:`get_json` the status is handed back to the caller: the
        token endpoint reports credential problems through 4xx bodies that
        the token store interprets itself.
        """
        _logger.debug("POST %s form=%s", url, redact_for_log(dict(form)))
        headers = {"accept": "application/json", "user-agent": USER_AGENT}

        try:
            async with self._http.post(url, data=dict(form), headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                status = resp.status
        except TimeoutError as exc:
            raise RemoteError(f"Request to {url} timed out", endpoint=url) from exc
        except aiohttp.ClientError as exc:
            raise RemoteError(f"Request to {url} failed: {exc}", endpoint=url) from exc

        try:
            body: Any = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError as exc:
            raise RemoteError(
                f"Invalid JSON from {url}: {text[:200]}",
                status_code=status,
                endpoint=url,
            ) from exc
        return status, body
