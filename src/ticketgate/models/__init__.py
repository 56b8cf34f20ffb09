"""Pydantic models for ticketgate records."""

from ticketgate.models.entrant import CarAssignment, Entrant
from ticketgate.models.report import (
    Exclusion,
    ExclusionReason,
    NotMapped,
    Rejected,
    SlotConflict,
    SyncReport,
    SyncStatus,
)
from ticketgate.models.ticket import MetadataLookup, Ticket
from ticketgate.models.token import Token

__all__ = [
    "CarAssignment",
    "Entrant",
    "Exclusion",
    "ExclusionReason",
    "MetadataLookup",
    "NotMapped",
    "Rejected",
    "SlotConflict",
    "SyncReport",
    "SyncStatus",
    "Ticket",
    "Token",
]
