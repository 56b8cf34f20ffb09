"""HTTP surface: OAuth2 callback, manual trigger and order-paid webhook."""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from ticketgate._redact import redact_for_log
from ticketgate.exceptions import AuthError
from ticketgate.models.report import SyncReport, SyncStatus
from ticketgate.oauth import TokenStore
from ticketgate.orchestrator import SyncOrchestrator, TriggerSource

_logger = logging.getLogger(__name__)

ORCHESTRATOR_KEY = web.AppKey("orchestrator", SyncOrchestrator)
TOKEN_STORE_KEY = web.AppKey("token_store", TokenStore)

_STATUS_CODES: dict[SyncStatus, int] = {
    SyncStatus.OK: 200,
    SyncStatus.SYNC_IN_PROGRESS: 409,
    SyncStatus.AUTH_ERROR: 401,
    SyncStatus.REMOTE_ERROR: 502,
    SyncStatus.ROSTER_ERROR: 500,
    SyncStatus.CANCELLED: 503,
    SyncStatus.INTERNAL_ERROR: 500,
}


def _report_response(report: SyncReport) -> web.Response:
    return web.json_response(report.model_dump(mode="json"), status=_STATUS_CODES[report.status])


async def handle_oauth2_callback(request: web.Request) -> web.Response:
    code = request.query.get("code")
    state = request.query.get("state")
    _logger.info("OAuth2 callback: %s", redact_for_log(dict(request.query)))
    if not code or not state:
        raise web.HTTPBadRequest(text="missing code or state")
    try:
        await request.app[TOKEN_STORE_KEY].exchange_code(code, state)
    except AuthError as exc:
        _logger.error("Failed to exchange code for token: %s", exc)
        raise web.HTTPUnauthorized(text="authentication failed") from exc
    request.app[ORCHESTRATOR_KEY].submit(TriggerSource.AUTHORIZED)
    return web.Response(text="authentication successful")


async def handle_sync(request: web.Request) -> web.Response:
    report = await request.app[ORCHESTRATOR_KEY].submit(TriggerSource.MANUAL)
    return _report_response(report)


async def handle_order_paid(request: web.Request) -> web.Response:
    try:
        payload: Any = await request.json()
    except ValueError as exc:
        raise web.HTTPBadRequest(text="invalid JSON") from exc
    if not isinstance(payload, dict):
        raise web.HTTPBadRequest(text="invalid payload")
    _logger.debug("order-paid payload: %s", redact_for_log(payload))
    if payload.get("event") != "order-paid":
        _logger.warning("Received event %s instead of order-paid", payload.get("event"))
        raise web.HTTPBadRequest(text="unsupported event")
    order_id = payload.get("guid")
    if not isinstance(order_id, str) or not order_id:
        raise web.HTTPBadRequest(text="missing order guid")
    report = await request.app[ORCHESTRATOR_KEY].submit(TriggerSource.WEBHOOK, order_id=order_id)
    return _report_response(report)


async def handle_health(request: web.Request) -> web.Response:
    orchestrator = request.app[ORCHESTRATOR_KEY]
    last = orchestrator.last_report
    return web.json_response(
        {
            "authorized": request.app[TOKEN_STORE_KEY].is_authorized,
            "busy": orchestrator.busy,
            "last_report": last.model_dump(mode="json") if last is not None else None,
        }
    )


def create_app(orchestrator: SyncOrchestrator, token_store: TokenStore) -> web.Application:
    """Build the aiohttp application exposing the gateway's endpoints."""
    app = web.Application()
    app[ORCHESTRATOR_KEY] = orchestrator
    app[TOKEN_STORE_KEY] = token_store
    app.router.add_get("/eventix/oauth2/v1/callback", handle_oauth2_callback)
    app.router.add_post("/eventix/webhook/v1/order-paid", handle_order_paid)
    app.router.add_post("/sync", handle_sync)
    app.router.add_get("/health", handle_health)
    return app
