"""Per-ticket outcomes and the sync pass report."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ExclusionReason(StrEnum):
    NOT_MAPPED = "not_mapped"
    REJECTED = "rejected"
    SLOT_CONFLICT = "slot_conflict"


class SyncStatus(StrEnum):
    OK = "ok"
    AUTH_ERROR = "auth_error"
    REMOTE_ERROR = "remote_error"
    SYNC_IN_PROGRESS = "sync_in_progress"
    ROSTER_ERROR = "roster_error"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"


class Exclusion(BaseModel):
    """A ticket left out of the commit, and why."""

    model_config = ConfigDict(frozen=True)

    ticket_id: str
    reason: ExclusionReason
    detail: str = ""


class NotMapped(Exclusion):
    """The ticket's type has no car mapping, or the car has no class."""

    reason: ExclusionReason = ExclusionReason.NOT_MAPPED


class Rejected(Exclusion):
    """The ticket lacks data required to build an entrant."""

    reason: ExclusionReason = ExclusionReason.REJECTED


class SlotConflict(Exclusion):
    """The ticket's slot is claimed by another live ticket or a manual entry."""

    reason: ExclusionReason = ExclusionReason.SLOT_CONFLICT


class SyncReport(BaseModel):
    """Outcome of one sync pass.

    Always complete: a failed pass still reports its status, error and
    whatever exclusions were known when it stopped.
    """

    status: SyncStatus = SyncStatus.OK
    added: list[str] = Field(default_factory=list)
    """Ticket ids whose entrant was added."""
    updated: list[str] = Field(default_factory=list)
    """Ticket ids whose entrant changed (including slot moves)."""
    removed: list[str] = Field(default_factory=list)
    """Ticket ids whose entrant was removed."""
    excluded: list[Exclusion] = Field(default_factory=list)
    error: str | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.OK

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)

    def summary(self) -> str:
        """One-line summary for logs."""
        text = (
            f"status={self.status} added={len(self.added)} updated={len(self.updated)} "
            f"removed={len(self.removed)} excluded={len(self.excluded)}"
        )
        if self.error:
            text += f" error={self.error}"
        return text
