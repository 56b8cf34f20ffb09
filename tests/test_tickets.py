from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from ticketgate._api.tickets import fetch_order, fetch_tickets, parse_order
from ticketgate.config import GatewayConfig
from ticketgate.exceptions import AuthError, RemoteError
from ticketgate.models.token import Token

from tests._support import FIELDS

_TOKEN = Token(access_value="access-1")


def _ticket(guid: str, ticket_type: str = "type-gt3", *, event: str = "event-1", **answers: Any) -> dict[str, Any]:
    meta = [{"metadata_id": field_id, "value": value} for field_id, value in answers.items()]
    return {"guid": guid, "ticket_id": ticket_type, "meta_data": meta, "ticket": {"event_id": event}}


def _order(guid: str, *tickets: dict[str, Any], status: str = "paid") -> dict[str, Any]:
    return {"guid": guid, "status": status, "tickets": list(tickets)}


class _PagedApi:
    """Serves orders in pages the way the event statistics search does."""

    def __init__(self, orders: list[dict[str, Any]], *, report_total: bool = True) -> None:
        self.orders = orders
        self.report_total = report_total
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    async def get_json(self, url: str, *, bearer: str, params: Mapping[str, Any] | None = None) -> Any:
        params = dict(params or {})
        self.calls.append((url, bearer, params))
        start, size = params["from"], params["size"]
        hits: dict[str, Any] = {"hits": [{"_source": order} for order in self.orders[start : start + size]]}
        if self.report_total:
            hits["total"] = {"value": len(self.orders), "relation": "eq"}
        return {"took": 3, "hits": hits}

    async def post_form(self, url: str, form: Mapping[str, str]) -> tuple[int, Any]:
        raise AssertionError("unexpected token request")


class _StaticApi(_PagedApi):
    def __init__(self, response: Any = None, error: Exception | None = None) -> None:
        super().__init__([])
        self.response = response
        self.error = error

    async def get_json(self, url: str, *, bearer: str, params: Mapping[str, Any] | None = None) -> Any:
        self.calls.append((url, bearer, dict(params or {})))
        if self.error is not None:
            raise self.error
        return self.response


def test_parse_order_normalizes_metadata() -> None:
    order = _order(
        "order-1",
        _ticket(
            "t-1",
            **{"meta-first": "  Ann ", "meta-last": "Lee", "meta-team": "n/a", "meta-steam": 76561198000000001},
        ),
    )

    [ticket] = parse_order(order, "event-1", FIELDS)

    assert ticket.ticket_id == "t-1"
    assert ticket.ticket_type_id == "type-gt3"
    assert ticket.order_id == "order-1"
    assert ticket.lookup("meta-first").value == "Ann"
    assert ticket.lookup("meta-steam").value == "76561198000000001"
    assert not ticket.lookup("meta-team")
    assert ticket.missing_metadata == ("meta-team",)
    assert ticket.incomplete


def test_parse_order_skips_unpaid_and_cancelled() -> None:
    unpaid = _order("order-1", _ticket("t-1"), status="cancelled")
    assert parse_order(unpaid, "event-1", FIELDS) == []

    refunded = _ticket("t-2")
    refunded["status"] = "Refunded"
    mixed = _order("order-2", refunded, _ticket("t-3"), _ticket("t-4", event="event-2"))
    assert [t.ticket_id for t in parse_order(mixed, "event-1", FIELDS)] == ["t-3"]


def test_parse_order_rejects_malformed_order() -> None:
    with pytest.raises(RemoteError):
        parse_order(["not", "an", "order"], "event-1", FIELDS)
    with pytest.raises(RemoteError):
        parse_order({"guid": "o", "status": "paid", "tickets": "t-1"}, "event-1", FIELDS)


@pytest.mark.asyncio
async def test_fetch_consumes_every_page(config: GatewayConfig) -> None:
    orders = [_order(f"order-{n}", _ticket(f"t-{n}")) for n in range(5)]
    api = _PagedApi(orders)

    tickets = await fetch_tickets(api, config, "event-1", _TOKEN, page_size=2)

    assert [t.ticket_id for t in tickets] == [f"t-{n}" for n in range(5)]
    assert [call[2]["from"] for call in api.calls] == [0, 2, 4]
    url, bearer, _ = api.calls[0]
    assert url == "https://api.test/statistics/event/event-1"
    assert bearer == "access-1"


@pytest.mark.asyncio
async def test_fetch_without_total_stops_on_short_page(config: GatewayConfig) -> None:
    orders = [_order(f"order-{n}", _ticket(f"t-{n}")) for n in range(4)]
    api = _PagedApi(orders, report_total=False)

    tickets = await fetch_tickets(api, config, "event-1", _TOKEN, page_size=2)

    assert len(tickets) == 4
    # The third request returns an empty page.
    assert len(api.calls) == 3


@pytest.mark.asyncio
async def test_fetch_keeps_first_copy_of_duplicate_ticket(config: GatewayConfig) -> None:
    first = _ticket("t-1", **{"meta-first": "Ann"})
    again = _ticket("t-1", **{"meta-first": "Bob"})
    api = _PagedApi([_order("order-1", first), _order("order-2", again)])

    [ticket] = await fetch_tickets(api, config, "event-1", _TOKEN)

    assert ticket.lookup("meta-first").value == "Ann"


@pytest.mark.asyncio
async def test_fetch_rejects_unexpected_shape(config: GatewayConfig) -> None:
    with pytest.raises(RemoteError, match="hits"):
        await fetch_tickets(_StaticApi({"error": "nope"}), config, "event-1", _TOKEN)


@pytest.mark.asyncio
async def test_fetch_propagates_auth_error(config: GatewayConfig) -> None:
    api = _StaticApi(error=AuthError("HTTP 401"))

    with pytest.raises(AuthError):
        await fetch_tickets(api, config, "event-1", _TOKEN)


@pytest.mark.asyncio
async def test_fetch_order_reads_single_order(config: GatewayConfig) -> None:
    api = _StaticApi(_order("order-9", _ticket("t-9", "type-m4")))

    [ticket] = await fetch_order(api, config, "event-1", "order-9", _TOKEN)

    assert ticket.ticket_type_id == "type-m4"
    assert api.calls[0][0] == "https://api.test/order/order-9"
