"""Shared fakes and roster data for the test suite."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ticketgate.config import GatewayConfig, MetadataFieldIds
from ticketgate.exceptions import AuthError
from ticketgate.mapping import CarMapping
from ticketgate.oauth import TokenStore
from ticketgate.orchestrator import SyncOrchestrator
from ticketgate.reconcile import RosterReconciler
from ticketgate.roster import RosterFile

FIELDS = MetadataFieldIds(
    first_name="meta-first",
    last_name="meta-last",
    team_name="meta-team",
    simulator_id="meta-steam",
)

CAR_MAP = "type-gt3:porsche_992_gt3_cup:CAR_1,type-m4:bmw_m4_gt3:CAR_3"


def championship() -> dict[str, Any]:
    """A small two-class championship with one hand-added entrant."""
    return {
        "Name": "Sprint Cup",
        "Classes": [
            {
                "Name": "Cup",
                "AvailableCars": ["porsche_992_gt3_cup"],
                "Entrants": {
                    "CAR_1": {"Name": "", "Team": "", "GUID": "", "Model": "porsche_992_gt3_cup"},
                    "CAR_2": {"Name": "", "Team": "", "GUID": "", "Model": "porsche_992_gt3_cup"},
                },
            },
            {
                "Name": "GT3",
                "AvailableCars": ["bmw_m4_gt3", "audi_r8_lms"],
                "Entrants": {
                    "CAR_3": {"Name": "", "Team": "", "GUID": "", "Model": "bmw_m4_gt3"},
                    "CAR_4": {
                        "Name": "Marshal Car",
                        "Team": "Organisers",
                        "GUID": "76561198000000999",
                        "Model": "audi_r8_lms",
                    },
                },
            },
        ],
    }


def steam_for(ticket_id: str) -> str:
    """A distinct simulator id per ticket: ``T1`` -> ``76561198000000001``."""
    digits = "".join(char for char in ticket_id if char.isdigit()) or "0"
    return f"765611980000{int(digits):05d}"


def ticket_payload(
    guid: str,
    ticket_type: str = "type-gt3",
    *,
    steam: str | None = "",
) -> dict[str, Any]:
    """Ticket JSON; *steam* defaults to :func:`steam_for` and ``None`` omits it."""
    if steam == "":
        steam = steam_for(guid)
    meta = [
        {"metadata_id": "meta-first", "value": "Ann"},
        {"metadata_id": "meta-last", "value": "Lee"},
    ]
    if steam is not None:
        meta.append({"metadata_id": "meta-steam", "value": steam})
    return {"guid": guid, "ticket_id": ticket_type, "meta_data": meta, "ticket": {"event_id": "event-1"}}


def order_payload(guid: str, *tickets: dict[str, Any], status: str = "paid") -> dict[str, Any]:
    return {"guid": guid, "status": status, "tickets": list(tickets)}


@dataclass
class FakeEventix:
    """In-memory ticketing platform: token endpoint plus the two read endpoints."""

    orders: list[dict[str, Any]] = field(default_factory=list)
    rejected_tokens: set[str] = field(default_factory=set)
    failure: Exception | None = None
    gate: asyncio.Event | None = None
    token_requests: int = 0
    reads: list[tuple[str, str]] = field(default_factory=list)

    async def post_form(self, url: str, form: Mapping[str, str]) -> tuple[int, Any]:
        self.token_requests += 1
        n = self.token_requests
        if form.get("grant_type") == "authorization_code" and form.get("code") != "good-code":
            return 400, {"error": "invalid_grant"}
        return 200, {"access_token": f"access-{n}", "refresh_token": f"refresh-{n + 1}", "expires_in": 3600}

    async def get_json(self, url: str, *, bearer: str, params: Mapping[str, Any] | None = None) -> Any:
        self.reads.append((url, bearer))
        if self.gate is not None:
            await self.gate.wait()
        if self.failure is not None:
            raise self.failure
        if bearer in self.rejected_tokens:
            raise AuthError(f"HTTP 401 from {url}: token rejected")
        if "/order/" in url:
            order_id = url.rsplit("/", 1)[-1]
            return next(order for order in self.orders if order["guid"] == order_id)
        hits = [{"_source": order} for order in self.orders]
        return {"hits": {"total": {"value": len(hits)}, "hits": hits}}


def make_orchestrator(config: GatewayConfig, eventix: FakeEventix) -> SyncOrchestrator:
    return SyncOrchestrator(
        config,
        TokenStore(config.oauth, eventix),
        eventix,
        RosterReconciler(RosterFile(config.roster_file, backup=False), initial_wait=0),
        CarMapping.parse(config.car_map),
    )


def read_entrants(path: Path) -> dict[str, dict[str, Any]]:
    """Roster entries keyed by slot id."""
    document = json.loads(path.read_text(encoding="utf-8"))
    return {slot: entry for cls in document["Classes"] for slot, entry in cls["Entrants"].items()}


