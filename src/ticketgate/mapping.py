"""Ticket type to car mapping.

The table is static configuration: each ticket type entitles its holder to
exactly one car and one reserved slot in the championship.  It is written as
comma-separated ``ticket_type:car:slot`` triples, e.g.::

    TICKET_ID_TO_CAR_MAP="b1c9...:porsche_992_gt3_cup:CAR_1,7f02...:bmw_m4_gt3:CAR_2"
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from ticketgate.exceptions import ConfigError
from ticketgate.models.entrant import CarAssignment
from ticketgate.models.report import NotMapped


class CarMapping(Mapping[str, CarAssignment]):
    """Validated, read-only ``ticket_type_id -> CarAssignment`` table."""

    def __init__(self, table: Mapping[str, CarAssignment]) -> None:
        if not table:
            raise ConfigError("Car mapping is empty")
        self._table = dict(table)

    @classmethod
    def parse(cls, text: str) -> CarMapping:
        """Parse the ``ticket_type:car:slot,...`` configuration string.

        Raises
        ------
        ConfigError
            Empty table, malformed triple, or a ticket type listed twice.
        """
        table: dict[str, CarAssignment] = {}
        for chunk in text.split(","):
            entry = chunk.strip()
            if not entry:
                continue
            parts = [part.strip() for part in entry.split(":")]
            if len(parts) != 3 or not all(parts):
                raise ConfigError(f"Malformed car mapping entry {entry!r}, expected ticket_type:car:slot")
            ticket_type, car_id, slot_id = parts
            if ticket_type in table:
                raise ConfigError(f"Ticket type {ticket_type!r} is mapped more than once")
            table[ticket_type] = CarAssignment(car_id=car_id, slot_id=slot_id)
        return cls(table)

    def resolve(self, ticket_type_id: str, *, ticket_id: str = "") -> CarAssignment | NotMapped:
        """Look up the car and slot for *ticket_type_id*.  Pure."""
        assignment = self._table.get(ticket_type_id)
        if assignment is None:
            return NotMapped(
                ticket_id=ticket_id,
                detail=f"no car mapped for ticket type {ticket_type_id or '<missing>'}",
            )
        return assignment

    def slot_conflicts(self) -> dict[tuple[str, str], list[str]]:
        """Ticket types configured with the same car and slot.

        Such types can never both sync; operators get this at startup
        rather than as per-ticket conflicts later.
        """
        by_address: dict[tuple[str, str], list[str]] = {}
        for ticket_type, assignment in self._table.items():
            by_address.setdefault((assignment.car_id, assignment.slot_id), []).append(ticket_type)
        return {address: types for address, types in by_address.items() if len(types) > 1}

    def __getitem__(self, ticket_type_id: str) -> CarAssignment:
        return self._table[ticket_type_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)
