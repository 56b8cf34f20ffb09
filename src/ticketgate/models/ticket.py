"""Canonical ticket model."""

from __future__ import annotations

from pydantic import Field

from ticketgate.models._base import GatewayModel


class MetadataLookup(GatewayModel):
    """Result of looking up one metadata field on a ticket.

    Tagged present/missing result: ``value`` is only meaningful when
    ``present`` is true.
    """

    field_id: str
    present: bool = False
    value: str = ""

    def __bool__(self) -> bool:
        return self.present

    def value_or(self, default: str) -> str:
        return self.value if self.present else default


class Ticket(GatewayModel):
    """A purchased ticket, normalized from the platform's order payload.

    Immutable once fetched; one fetch produces the authoritative snapshot
    for a sync pass.
    """

    ticket_id: str
    """Ticket guid, unique within an event."""
    ticket_type_id: str
    """Ticket-type identifier; selects the car and slot."""
    order_id: str = ""
    """Guid of the order the ticket was bought in."""
    metadata: dict[str, str] = Field(default_factory=dict)
    """Metadata answers keyed by metadata field id; blank answers are absent."""
    status: str = ""
    """Ticket-level status as reported by the platform, if any."""
    missing_metadata: tuple[str, ...] = ()
    """Configured metadata field ids this ticket has no answer for."""

    @property
    def incomplete(self) -> bool:
        """The ``IncompleteTicket`` flag."""
        return bool(self.missing_metadata)

    def lookup(self, field_id: str) -> MetadataLookup:
        value = self.metadata.get(field_id)
        if value is None:
            return MetadataLookup(field_id=field_id)
        return MetadataLookup(field_id=field_id, present=True, value=value)
