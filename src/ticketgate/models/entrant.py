"""Entrant and car assignment models."""

from __future__ import annotations

from pydantic import Field

from ticketgate.models._base import GatewayModel


class CarAssignment(GatewayModel):
    """The car and reserved slot a ticket type entitles its holder to."""

    car_id: str = Field(min_length=1)
    slot_id: str = Field(min_length=1)


class Entrant(GatewayModel):
    """A roster row derived from one ticket.

    ``source_ticket_id`` is the join key back to the ticket and is unique
    among gateway-managed entries of a roster.
    """

    source_ticket_id: str = Field(min_length=1)
    first_name: str = ""
    last_name: str = ""
    team_name: str = ""
    simulator_id: str = Field(min_length=1)
    car_id: str = Field(min_length=1)
    slot_id: str = Field(min_length=1)

    @property
    def name(self) -> str:
        """Display name as written to the roster (``"First Last"``)."""
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def address(self) -> tuple[str, str]:
        """Stable ``(car_id, slot_id)`` roster address."""
        return (self.car_id, self.slot_id)
