"""Sync orchestration.

A sync pass is: get a valid token, fetch tickets, resolve + project them,
reconcile the roster.  Passes are requested through a trigger channel fed
by the scheduler, the operator (manual/HTTP) and the order-paid webhook; a
request arriving while a pass is running is answered with a
``sync_in_progress`` report instead of being queued behind it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from ticketgate._api.tickets import fetch_order, fetch_tickets
from ticketgate._transport import Transport
from ticketgate.config import GatewayConfig
from ticketgate.exceptions import (
    AuthError,
    RemoteError,
    RosterError,
    SyncCancelledError,
    SyncInProgressError,
)
from ticketgate.mapping import CarMapping
from ticketgate.models.report import SyncReport, SyncStatus
from ticketgate.models.ticket import Ticket
from ticketgate.models.token import Token
from ticketgate.oauth import TokenStore
from ticketgate.projector import project_all
from ticketgate.reconcile import RosterReconciler

_logger = logging.getLogger(__name__)

TicketSource = Callable[[Token], Awaitable[list[Ticket]]]


class TriggerSource(StrEnum):
    SCHEDULE = "schedule"
    MANUAL = "manual"
    WEBHOOK = "webhook"
    AUTHORIZED = "authorized"


@dataclass(slots=True)
class SyncTrigger:
    """A request for one sync pass, answered through ``future``."""

    source: TriggerSource
    future: asyncio.Future[SyncReport]
    order_id: str | None = None
    requested_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def _finish(report: SyncReport, status: SyncStatus | None = None, error: str | None = None) -> SyncReport:
    if status is not None:
        report.status = status
    if error is not None:
        report.error = error
    report.finished_at = datetime.now(UTC)
    return report


class SyncOrchestrator:
    """Sequences token store, fetcher, projector and reconciler.

    Usage::

        orchestrator = SyncOrchestrator(config, token_store, transport, reconciler, mapping)
        runner = asyncio.create_task(orchestrator.run())
        report = await orchestrator.submit(TriggerSource.MANUAL)
    """

    def __init__(
        self,
        config: GatewayConfig,
        token_store: TokenStore,
        transport: Transport,
        reconciler: RosterReconciler,
        mapping: CarMapping,
    ) -> None:
        self._config = config
        self._tokens = token_store
        self._transport = transport
        self._reconciler = reconciler
        self._mapping = mapping
        self._pass_lock = asyncio.Lock()
        self._stopping = asyncio.Event()
        self._queue: asyncio.Queue[SyncTrigger | None] = asyncio.Queue(maxsize=1)
        self.last_report: SyncReport | None = None

    @property
    def busy(self) -> bool:
        """Whether a sync pass is running."""
        return self._pass_lock.locked()

    @property
    def token_store(self) -> TokenStore:
        return self._tokens

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    # ------------------------------------------------------------------
    # Sync passes
    # ------------------------------------------------------------------

    async def run_sync(self, event_id: str | None = None) -> SyncReport:
        """Run one full pass for *event_id* (default: the configured event).

        Never raises for pass-level failures; the returned report carries
        the status and error.
        """
        event = event_id or self._config.event_id

        async def _fetch(token: Token) -> list[Ticket]:
            return await fetch_tickets(self._transport, self._config, event, token)

        return await self._run_pass(_fetch, remove_missing=True, label=f"event {event}")

    async def sync_order(self, order_id: str) -> SyncReport:
        """Add or update the entrants of a single order; never removes."""

        async def _fetch(token: Token) -> list[Ticket]:
            return await fetch_order(self._transport, self._config, self._config.event_id, order_id, token)

        return await self._run_pass(_fetch, remove_missing=False, label=f"order {order_id}")

    async def _fetch_with_reauth(self, fetch: TicketSource) -> list[Ticket]:
        """Fetch, retrying exactly once after a forced refresh on token rejection."""
        token = await self._tokens.get_valid_token()
        try:
            return await fetch(token)
        except AuthError as exc:
            _logger.warning("Token rejected during fetch (%s), forcing refresh and retrying once", exc)
            token = await self._tokens.force_refresh(token)
            return await fetch(token)

    async def _run_pass(self, fetch: TicketSource, *, remove_missing: bool, label: str) -> SyncReport:
        report = SyncReport()
        if self._pass_lock.locked():
            _logger.warning("Sync of %s rejected: another pass is in progress", label)
            return _finish(report, SyncStatus.SYNC_IN_PROGRESS, "another sync pass is in progress")

        async with self._pass_lock:
            if self._stopping.is_set():
                return self._record(_finish(report, SyncStatus.CANCELLED, "shutting down"), label)
            try:
                tickets = await self._fetch_with_reauth(fetch)
                projection = project_all(tickets, self._mapping, self._config.metadata_fields)
                report.excluded.extend(projection.excluded)
                diff = await self._reconciler.reconcile(
                    projection.entrants,
                    remove_missing=remove_missing,
                    hold={exclusion.ticket_id for exclusion in projection.excluded},
                    should_abort=self._stopping.is_set,
                )
            except AuthError as exc:
                _finish(report, SyncStatus.AUTH_ERROR, str(exc))
            except RemoteError as exc:
                _finish(report, SyncStatus.REMOTE_ERROR, str(exc))
            except SyncInProgressError as exc:
                _finish(report, SyncStatus.SYNC_IN_PROGRESS, str(exc))
            except SyncCancelledError as exc:
                _finish(report, SyncStatus.CANCELLED, str(exc))
            except RosterError as exc:
                _finish(report, SyncStatus.ROSTER_ERROR, str(exc))
            else:
                report.added = diff.added
                report.updated = diff.updated
                report.removed = diff.removed
                report.excluded.extend(diff.excluded)
                _finish(report)
        return self._record(report, label)

    def _record(self, report: SyncReport, label: str) -> SyncReport:
        self.last_report = report
        if report.ok:
            _logger.info("Sync of %s finished: %s", label, report.summary())
        else:
            _logger.error("Sync of %s failed: %s", label, report.summary())
        return report

    # ------------------------------------------------------------------
    # Trigger channel
    # ------------------------------------------------------------------

    def submit(
        self,
        source: TriggerSource = TriggerSource.MANUAL,
        *,
        order_id: str | None = None,
    ) -> asyncio.Future[SyncReport]:
        """Request a pass; the returned future resolves with its report.

        A request made while a pass is running (or another is already
        waiting) resolves immediately with ``sync_in_progress``.
        """
        future: asyncio.Future[SyncReport] = asyncio.get_running_loop().create_future()
        if self._stopping.is_set():
            future.set_result(_finish(SyncReport(), SyncStatus.CANCELLED, "shutting down"))
            return future
        if self.busy:
            future.set_result(_finish(SyncReport(), SyncStatus.SYNC_IN_PROGRESS, "another sync pass is in progress"))
            return future
        try:
            self._queue.put_nowait(SyncTrigger(source=source, future=future, order_id=order_id))
        except asyncio.QueueFull:
            future.set_result(_finish(SyncReport(), SyncStatus.SYNC_IN_PROGRESS, "a sync pass is already pending"))
        else:
            _logger.debug("Queued %s sync trigger", source)
        return future

    async def run(self) -> None:
        """Consume triggers until :meth:`shutdown`.

        A pass that raises unexpectedly is logged and answered with an
        ``internal_error`` report; later triggers are still served.
        """
        while not self._stopping.is_set():
            trigger = await self._queue.get()
            if trigger is None:
                break
            if trigger.future.done():
                continue
            try:
                if trigger.order_id is not None:
                    report = await self.sync_order(trigger.order_id)
                else:
                    report = await self.run_sync()
            except Exception as exc:
                _logger.exception("Sync pass for %s trigger failed", trigger.source)
                report = self._record(
                    _finish(SyncReport(), SyncStatus.INTERNAL_ERROR, f"{type(exc).__name__}: {exc}"),
                    f"{trigger.source} trigger",
                )
            if not trigger.future.done():
                trigger.future.set_result(report)
        self._drain()

    async def schedule(self, interval: float | None = None) -> None:
        """Submit a full sync every *interval* seconds until :meth:`shutdown`."""
        period = interval if interval is not None else self._config.sync_interval
        if period <= 0:
            return
        while not self._stopping.is_set():
            self.submit(TriggerSource.SCHEDULE)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), period)

    def shutdown(self) -> None:
        """Stop consuming triggers; an in-flight pass abandons before its commit."""
        self._stopping.set()
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(None)

    def _drain(self) -> None:
        while True:
            try:
                trigger = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            if trigger is not None and not trigger.future.done():
                trigger.future.set_result(_finish(SyncReport(), SyncStatus.CANCELLED, "shutting down"))
