"""Ticket endpoints.

Endpoints:
  - /statistics/event/{event_id}   (paginated search over an event's orders)
  - /order/{order_id}              (single order, used by the order-paid webhook)

Both return orders whose ``tickets`` carry a ticket-type id (``ticket_id``),
the ticket's own ``guid`` and the buyer's answers in ``meta_data``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ticketgate._constants import (
    CANCELLED_TICKET_STATUSES,
    EVENT_STATISTICS_ENDPOINT,
    ORDER_ENDPOINT,
    PAGE_SIZE,
    PAID_ORDER_STATUS,
)
from ticketgate._transport import Transport
from ticketgate.config import GatewayConfig, MetadataFieldIds
from ticketgate.exceptions import RemoteError
from ticketgate.models._base import clean_text
from ticketgate.models.ticket import Ticket
from ticketgate.models.token import Token

_logger = logging.getLogger(__name__)


def _configured_field_ids(fields: MetadataFieldIds) -> tuple[str, ...]:
    return (fields.first_name, fields.last_name, fields.team_name, fields.simulator_id)


def _parse_metadata(raw: Any) -> dict[str, str]:
    """Normalize the platform's metadata answers to ``{field_id: value}``.

    Accepts the usual list of ``{"metadata_id": ..., "value": ...}`` items
    as well as an already flattened mapping.  Blank answers are dropped.
    """
    items: Iterable[tuple[Any, Any]]
    if isinstance(raw, Mapping):
        items = raw.items()
    elif isinstance(raw, list):
        items = (
            (item.get("metadata_id") or item.get("metadataId"), item.get("value"))
            for item in raw
            if isinstance(item, Mapping)
        )
    else:
        return {}

    metadata: dict[str, str] = {}
    for field_id, value in items:
        if not isinstance(field_id, str) or not field_id:
            continue
        text = clean_text(value)
        if text is not None:
            metadata.setdefault(field_id, text)
    return metadata


def _parse_ticket(raw: Mapping[str, Any], order_id: str, fields: MetadataFieldIds) -> Ticket | None:
    ticket_id = clean_text(raw.get("guid"))
    if ticket_id is None:
        _logger.warning("Skipping ticket without guid in order %s", order_id or "<unknown>")
        return None
    metadata = _parse_metadata(raw.get("meta_data", raw.get("metadata")))
    missing = tuple(field_id for field_id in _configured_field_ids(fields) if field_id not in metadata)
    return Ticket(
        ticket_id=ticket_id,
        ticket_type_id=clean_text(raw.get("ticket_id")) or "",
        order_id=order_id,
        metadata=metadata,
        status=clean_text(raw.get("status")) or "",
        missing_metadata=missing,
    )


def _ticket_event_id(raw: Mapping[str, Any]) -> str | None:
    nested = raw.get("ticket")
    if isinstance(nested, Mapping):
        return clean_text(nested.get("event_id"))
    return clean_text(raw.get("event_id"))


def parse_order(order: Any, event_id: str, fields: MetadataFieldIds) -> list[Ticket]:
    """Extract the live tickets of one order.

    Orders that are not paid and tickets with a cancellation status are
    the platform's explicit cancellation signal: they yield nothing, which
    the reconciler treats exactly like a ticket that disappeared.
    """
    if not isinstance(order, Mapping):
        raise RemoteError("Order entry is not an object")
    order_id = clean_text(order.get("guid")) or ""
    status = clean_text(order.get("status")) or ""
    if status != PAID_ORDER_STATUS:
        _logger.debug("Ignoring order %s with status %r", order_id, status)
        return []

    raw_tickets = order.get("tickets")
    if raw_tickets is None:
        return []
    if not isinstance(raw_tickets, list):
        raise RemoteError(f"Order {order_id} tickets is not an array")

    tickets: list[Ticket] = []
    for raw in raw_tickets:
        if not isinstance(raw, Mapping):
            _logger.warning("Skipping malformed ticket entry in order %s", order_id)
            continue
        ticket_event = _ticket_event_id(raw)
        if ticket_event is not None and ticket_event != event_id:
            continue
        ticket = _parse_ticket(raw, order_id, fields)
        if ticket is None:
            continue
        if ticket.status.lower() in CANCELLED_TICKET_STATUSES:
            _logger.debug("Ignoring ticket %s with status %r", ticket.ticket_id, ticket.status)
            continue
        tickets.append(ticket)
    return tickets


def _page_total(hits: Mapping[str, Any]) -> int | None:
    total = hits.get("total")
    if isinstance(total, Mapping):
        total = total.get("value")
    if isinstance(total, bool) or not isinstance(total, int):
        return None
    return total


async def fetch_tickets(
    transport: Transport,
    config: GatewayConfig,
    event_id: str,
    token: Token,
    *,
    page_size: int = PAGE_SIZE,
) -> list[Ticket]:
    """Fetch every live ticket of *event_id*, consuming all pages.

    Duplicate ticket ids (an order shifting between pages while we read)
    keep their first occurrence.

    Raises
    ------
    AuthError
        The token was rejected mid-fetch.
    RemoteError
        Transport failure or a page that does not look like a search result.
        No partial result is ever returned.
    """
    url = config.api_base_url + EVENT_STATISTICS_ENDPOINT.format(event_id=event_id)
    tickets: dict[str, Ticket] = {}
    offset = 0
    pages = 0

    while True:
        response = await transport.get_json(
            url,
            bearer=token.access_value,
            params={"from": offset, "size": page_size},
        )
        pages += 1
        hits = response.get("hits") if isinstance(response, Mapping) else None
        if not isinstance(hits, Mapping) or not isinstance(hits.get("hits"), list):
            raise RemoteError(f"Missing hits->hits in response from {url}", endpoint=url)

        page: list[Any] = hits["hits"]
        for hit in page:
            source = hit.get("_source") if isinstance(hit, Mapping) else None
            for ticket in parse_order(source, event_id, config.metadata_fields):
                tickets.setdefault(ticket.ticket_id, ticket)

        offset += len(page)
        total = _page_total(hits)
        if not page or (total is not None and offset >= total) or (total is None and len(page) < page_size):
            break

    _logger.info("Fetched %d live tickets for event %s (%d pages)", len(tickets), event_id, pages)
    return list(tickets.values())


async def fetch_order(
    transport: Transport,
    config: GatewayConfig,
    event_id: str,
    order_id: str,
    token: Token,
) -> list[Ticket]:
    """Fetch the live tickets of a single order belonging to *event_id*."""
    url = config.api_base_url + ORDER_ENDPOINT.format(order_id=order_id)
    response = await transport.get_json(url, bearer=token.access_value)
    tickets = parse_order(response, event_id, config.metadata_fields)
    _logger.info("Fetched %d live tickets from order %s", len(tickets), order_id)
    return tickets
