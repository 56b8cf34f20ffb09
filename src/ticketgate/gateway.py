"""High-level wiring of the ticketgate components."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from ticketgate._transport import HttpTransport
from ticketgate.config import GatewayConfig
from ticketgate.exceptions import GatewayError
from ticketgate.mapping import CarMapping
from ticketgate.models.token import Token
from ticketgate.oauth import TokenStore
from ticketgate.orchestrator import SyncOrchestrator
from ticketgate.reconcile import RosterReconciler
from ticketgate.roster import RosterFile

_logger = logging.getLogger(__name__)


class Gateway:
    """Owns the HTTP session and the single instance of every component.

    Usage::

        async with Gateway(config) as gateway:
            report = await gateway.orchestrator.run_sync()
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        on_token: Callable[[Token], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._on_token = on_token
        self.mapping = CarMapping.parse(config.car_map)
        for (car_id, slot_id), ticket_types in self.mapping.slot_conflicts().items():
            _logger.warning(
                "Ticket types %s all map to slot %s of %s; their tickets will conflict",
                ", ".join(ticket_types),
                slot_id,
                car_id,
            )
        self._token_store: TokenStore | None = None
        self._orchestrator: SyncOrchestrator | None = None

    @property
    def config(self) -> GatewayConfig:
        return self._config

    @property
    def token_store(self) -> TokenStore:
        if self._token_store is None:
            raise GatewayError("Gateway not started. Use 'async with Gateway(...) as gateway:'")
        return self._token_store

    @property
    def orchestrator(self) -> SyncOrchestrator:
        if self._orchestrator is None:
            raise GatewayError("Gateway not started. Use 'async with Gateway(...) as gateway:'")
        return self._orchestrator

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> Gateway:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        transport = HttpTransport(self._http_session, timeout=self._config.http_timeout)
        self._token_store = TokenStore(
            self._config.oauth,
            transport,
            refresh_margin=self._config.refresh_margin,
            on_token=self._on_token,
        )
        reconciler = RosterReconciler(RosterFile(self._config.roster_file, backup=self._config.roster_backup))
        self._orchestrator = SyncOrchestrator(
            self._config,
            self._token_store,
            transport,
            reconciler,
            self.mapping,
        )
        _logger.info(
            "Gateway ready: event=%s roster=%s ticket types=%d",
            self._config.event_id,
            self._config.roster_file,
            len(self.mapping),
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._orchestrator is not None:
            self._orchestrator.shutdown()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._orchestrator = None
        self._token_store = None
