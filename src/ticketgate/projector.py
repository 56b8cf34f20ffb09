"""Ticket to entrant projection.

Turns a canonical :class:`~ticketgate.models.Ticket` plus its resolved car
into an :class:`~ticketgate.models.Entrant`, applying the metadata rules:

* the simulator id (Steam64) is required and must be numeric;
* at least one of first/last name is required;
* the team name defaults to empty.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ticketgate.config import MetadataFieldIds
from ticketgate.mapping import CarMapping
from ticketgate.models.entrant import CarAssignment, Entrant
from ticketgate.models.report import Exclusion, NotMapped, Rejected, SlotConflict
from ticketgate.models.ticket import Ticket

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProjectionResult:
    """Entrants ready to reconcile and the tickets left out of this pass."""

    entrants: list[Entrant] = field(default_factory=list)
    excluded: list[Exclusion] = field(default_factory=list)


def project(ticket: Ticket, assignment: CarAssignment, fields: MetadataFieldIds) -> Entrant | Rejected:
    """Build the entrant for *ticket*, or say why it cannot be built."""
    simulator = ticket.lookup(fields.simulator_id)
    if not simulator:
        return Rejected(ticket_id=ticket.ticket_id, detail="missing simulator id")
    if not (simulator.value.isascii() and simulator.value.isdigit()):
        return Rejected(
            ticket_id=ticket.ticket_id,
            detail=f"simulator id {simulator.value!r} is not numeric",
        )

    first = ticket.lookup(fields.first_name)
    last = ticket.lookup(fields.last_name)
    if not first and not last:
        return Rejected(ticket_id=ticket.ticket_id, detail="missing first and last name")

    return Entrant(
        source_ticket_id=ticket.ticket_id,
        first_name=first.value_or(""),
        last_name=last.value_or(""),
        team_name=ticket.lookup(fields.team_name).value_or(""),
        simulator_id=simulator.value,
        car_id=assignment.car_id,
        slot_id=assignment.slot_id,
    )


def project_all(tickets: Iterable[Ticket], mapping: CarMapping, fields: MetadataFieldIds) -> ProjectionResult:
    """Resolve and project every ticket of a pass.

    Entrants that would land on the same car and slot are a configuration
    conflict: all of them are excluded so none silently overwrites another.
    """
    result = ProjectionResult()
    candidates: dict[tuple[str, str], list[Entrant]] = {}

    for ticket in tickets:
        assignment = mapping.resolve(ticket.ticket_type_id, ticket_id=ticket.ticket_id)
        if isinstance(assignment, NotMapped):
            result.excluded.append(assignment)
            continue
        outcome = project(ticket, assignment, fields)
        if isinstance(outcome, Rejected):
            result.excluded.append(outcome)
            continue
        candidates.setdefault(outcome.address, []).append(outcome)

    for (car_id, slot_id), entrants in candidates.items():
        if len(entrants) == 1:
            result.entrants.append(entrants[0])
            continue
        ticket_ids = sorted(entrant.source_ticket_id for entrant in entrants)
        for entrant in entrants:
            others = ", ".join(tid for tid in ticket_ids if tid != entrant.source_ticket_id)
            result.excluded.append(
                SlotConflict(
                    ticket_id=entrant.source_ticket_id,
                    detail=f"slot {slot_id} of {car_id} also claimed by {others}",
                )
            )

    result.entrants.sort(key=lambda entrant: entrant.source_ticket_id)
    for exclusion in result.excluded:
        _logger.warning("Excluding ticket %s: %s (%s)", exclusion.ticket_id, exclusion.reason, exclusion.detail)
    return result
