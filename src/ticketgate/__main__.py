"""Command-line entry point.

Usage
-----
Configure through environment variables (see :meth:`GatewayConfig.from_env`)
and run::

    python -m ticketgate serve          # callback/trigger server + hourly sync
    python -m ticketgate sync           # one pass, needs EVENTIX_OAUTH2_REFRESH_TOKEN
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys

from aiohttp import web

from ticketgate._redact import mask_secret
from ticketgate.config import GatewayConfig
from ticketgate.exceptions import ConfigError
from ticketgate.gateway import Gateway
from ticketgate.models.token import Token
from ticketgate.server import create_app

_logger = logging.getLogger("ticketgate")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ticketgate",
        description="Sync ticket purchases into an ACSM championship entrant list.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("serve", help="Run the HTTP surface and the scheduled sync")
    sync = sub.add_parser("sync", help="Run a single sync pass and print its report")
    sync.add_argument("--event", help="Event GUID (default: EVENTIX_EVENT_GUID)")
    return parser.parse_args(argv)


def _log_new_refresh_token(token: Token) -> None:
    _logger.info("Refresh token now %s; store it as EVENTIX_OAUTH2_REFRESH_TOKEN", mask_secret(token.refresh_value))


async def _serve(config: GatewayConfig) -> int:
    host, _, port = config.listen_address.rpartition(":")
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop.set)

    async with Gateway(config, on_token=_log_new_refresh_token) as gateway:
        app = create_app(gateway.orchestrator, gateway.token_store)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, host or "0.0.0.0", int(port))  # noqa: S104
        await site.start()
        _logger.info("listening on %s", config.listen_address)

        if not gateway.token_store.is_authorized:
            print(f"Browse to: {gateway.token_store.authorization_url()}")

        orchestrator = gateway.orchestrator
        tasks = [
            asyncio.create_task(orchestrator.run(), name="sync-runner"),
            asyncio.create_task(orchestrator.schedule(), name="sync-schedule"),
        ]
        try:
            await stop.wait()
        finally:
            _logger.info("Shutting down")
            orchestrator.shutdown()
            await asyncio.gather(*tasks, return_exceptions=True)
            await runner.cleanup()
    return 0


async def _sync_once(config: GatewayConfig, event_id: str | None) -> int:
    async with Gateway(config, on_token=_log_new_refresh_token) as gateway:
        report = await gateway.orchestrator.run_sync(event_id)
    print(json.dumps(report.model_dump(mode="json"), indent=2))
    return 0 if report.ok else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = GatewayConfig.from_env()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.command == "serve":
        return asyncio.run(_serve(config))
    return asyncio.run(_sync_once(config, args.event))


if __name__ == "__main__":
    sys.exit(main())
