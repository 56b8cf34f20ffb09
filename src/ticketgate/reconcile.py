"""Roster reconciliation.

This is the only component allowed to modify the championship roster.

:func:`diff_roster` is a pure three-way diff keyed by source ticket id:

* entrants whose ticket has no gateway-managed entry yet are **added**;
* entrants whose entry differs are **updated**, in place when the slot is
  unchanged, moved otherwise;
* gateway-managed entries whose ticket is gone are **removed** (the slot is
  cleared, the entry itself stays since ACSM addresses entrants by slot);
* externally managed entries are never modified.

A driver appears at most once: an entrant whose simulator id is already on
the roster under another ticket or an external entry, or that shares it
with another entrant of the same pass, is excluded as a slot conflict.

:class:`RosterReconciler` wraps the diff in the single-writer commit
discipline: one reconcile+persist sequence at a time, a concurrent request
is rejected with :class:`~ticketgate.exceptions.SyncInProgressError`.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass, field
from typing import Any

from ticketgate._constants import (
    COMMIT_RETRY_ATTEMPTS,
    COMMIT_RETRY_INITIAL_WAIT,
    COMMIT_RETRY_MAX_WAIT,
    KEY_GUID,
    KEY_MODEL,
    KEY_NAME,
    KEY_SOURCE_TICKET,
    KEY_TEAM,
)
from ticketgate.exceptions import RosterChangedError, RosterError, SyncCancelledError, SyncInProgressError
from ticketgate.models.entrant import Entrant
from ticketgate.models.report import Exclusion, NotMapped, SlotConflict
from ticketgate.roster import EntryOwner, RosterFile, class_for_car, entry_at, entry_owner, iter_entries

_logger = logging.getLogger(__name__)

Address = tuple[int, str]
"""``(class_index, slot_id)`` of a roster entry."""


@dataclass(slots=True)
class RosterDiff:
    """The updated document plus what changed, by ticket id."""

    document: dict[str, Any]
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    excluded: list[Exclusion] = field(default_factory=list)
    repaired: int = 0
    """Duplicate ticket tags cleared from a previously corrupted roster."""

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed or self.repaired)


def _entry_fields(entrant: Entrant) -> dict[str, str]:
    return {
        KEY_NAME: entrant.name,
        KEY_TEAM: entrant.team_name,
        KEY_GUID: entrant.simulator_id,
        KEY_MODEL: entrant.car_id,
        KEY_SOURCE_TICKET: entrant.source_ticket_id,
    }


def _write_entry(entry: dict[str, Any], fields: dict[str, str]) -> bool:
    changed = any(entry.get(key) != value for key, value in fields.items())
    entry.update(fields)
    return changed


def _entry(document: dict[str, Any], address: Address) -> dict[str, Any]:
    entry = entry_at(document, *address)
    if entry is None:
        raise RosterError(f"Entrant {address[1]} of class {address[0]} disappeared while reconciling")
    return entry


def _guid(entry: dict[str, Any]) -> str:
    return str(entry.get(KEY_GUID) or "").strip()


def _clear_entry(entry: dict[str, Any]) -> None:
    entry[KEY_NAME] = ""
    entry[KEY_TEAM] = ""
    entry[KEY_GUID] = ""
    entry.pop(KEY_SOURCE_TICKET, None)


def diff_roster(
    document: dict[str, Any],
    entrants: Iterable[Entrant],
    *,
    remove_missing: bool = True,
    hold: Collection[str] = (),
) -> RosterDiff:
    """Compute the reconciled roster for *entrants*.  Pure: *document* is not modified.

    Parameters
    ----------
    document
        Current championship document.
    entrants
        The complete set of entrants for this pass, unique by ticket id.
    remove_missing
        Clear gateway-managed entries whose ticket is not in *entrants*.
        ``False`` for incremental (single order) passes.
    hold
        Ticket ids still live but excluded this pass (rejected, conflicting).
        Their existing entries are kept as they are rather than removed.

    Raises
    ------
    RosterError
        The document is not a championship document.
    ValueError
        Two entrants share a source ticket id.
    """
    working = copy.deepcopy(document)
    diff = RosterDiff(document=working)

    current: dict[str, Address] = {}
    external_guids: set[str] = set()
    for class_index, slot_id, entry in iter_entries(working):
        owner = entry_owner(entry)
        if owner == EntryOwner.EXTERNAL:
            external_guids.add(_guid(entry))
            continue
        if owner != EntryOwner.GATEWAY:
            continue
        ticket_id = str(entry[KEY_SOURCE_TICKET]).strip()
        if ticket_id in current:
            _logger.warning("Ticket %s is tagged on more than one entry, clearing slot %s", ticket_id, slot_id)
            _clear_entry(entry)
            diff.repaired += 1
            continue
        current[ticket_id] = (class_index, slot_id)
    holder_of = {address: ticket_id for ticket_id, address in current.items()}

    incoming: dict[str, Entrant] = {}
    for entrant in entrants:
        if entrant.source_ticket_id in incoming:
            raise ValueError(f"Duplicate entrant for ticket {entrant.source_ticket_id}")
        incoming[entrant.source_ticket_id] = entrant

    targets: dict[str, Address] = {}
    for ticket_id, entrant in sorted(incoming.items()):
        class_index = class_for_car(working, entrant.car_id)
        if class_index is None:
            diff.excluded.append(NotMapped(ticket_id=ticket_id, detail=f"no class offers car {entrant.car_id}"))
            continue
        if entry_at(working, class_index, entrant.slot_id) is None:
            diff.excluded.append(
                NotMapped(
                    ticket_id=ticket_id,
                    detail=f"class of car {entrant.car_id} has no slot {entrant.slot_id}",
                )
            )
            continue
        targets[ticket_id] = (class_index, entrant.slot_id)

    kept = {
        ticket_id
        for ticket_id in current
        if ticket_id not in targets and (ticket_id in hold or ticket_id in incoming or not remove_missing)
    }
    removed = sorted(ticket_id for ticket_id in current if ticket_id not in targets and ticket_id not in kept)
    in_place = {ticket_id for ticket_id, address in targets.items() if current.get(ticket_id) == address}

    # A ticket that cannot be written keeps its old entry, slot and simulator
    # id alike, which may in turn block another entrant; iterate to a fixed point.
    stuck: dict[str, str] = {}
    while True:
        unchanged = sorted(t for t in current if t in kept or t in stuck)
        staying = {current[t] for t in unchanged} | {current[t] for t in in_place}
        guid_holders = dict.fromkeys(external_guids, "an externally managed entrant")
        for ticket_id in unchanged:
            guid_holders.setdefault(_guid(_entry(working, current[ticket_id])), f"ticket {ticket_id}")
        guid_holders.pop("", None)

        writing = [ticket_id for ticket_id in sorted(targets) if ticket_id not in stuck]
        sharing: dict[str, list[str]] = {}
        for ticket_id in writing:
            sharing.setdefault(incoming[ticket_id].simulator_id, []).append(ticket_id)

        claimed: dict[Address, str] = {}
        newly_stuck: dict[str, str] = {}
        for ticket_id in writing:
            guid = incoming[ticket_id].simulator_id
            others = [other for other in sharing[guid] if other != ticket_id]
            if guid in guid_holders:
                newly_stuck[ticket_id] = f"simulator id {guid} is already used by {guid_holders[guid]}"
                continue
            if others:
                newly_stuck[ticket_id] = f"simulator id {guid} is also used by ticket {', '.join(others)}"
                continue
            if ticket_id in in_place:
                continue
            address = targets[ticket_id]
            if address in staying:
                newly_stuck[ticket_id] = f"slot {address[1]} is held by ticket {holder_of[address]}"
            elif entry_owner(_entry(working, address)) == EntryOwner.EXTERNAL:
                newly_stuck[ticket_id] = f"slot {address[1]} is occupied by an externally managed entrant"
            elif address in claimed:
                newly_stuck[ticket_id] = f"slot {address[1]} is also claimed by ticket {claimed[address]}"
            else:
                claimed[address] = ticket_id
        if not newly_stuck:
            break
        stuck.update(newly_stuck)

    for ticket_id, detail in sorted(stuck.items()):
        diff.excluded.append(SlotConflict(ticket_id=ticket_id, detail=detail))
    placed = [ticket_id for ticket_id in sorted(targets) if ticket_id not in in_place and ticket_id not in stuck]

    # Vacate first so a slot freed by one ticket can be taken by another.
    for ticket_id in removed:
        _logger.debug("Ticket %s gone, clearing slot %s", ticket_id, current[ticket_id][1])
        _clear_entry(_entry(working, current[ticket_id]))
        diff.removed.append(ticket_id)
    for ticket_id in placed:
        if ticket_id in current:
            _clear_entry(_entry(working, current[ticket_id]))

    for ticket_id in sorted(in_place.difference(stuck)):
        if _write_entry(_entry(working, targets[ticket_id]), _entry_fields(incoming[ticket_id])):
            _logger.debug("Updating entrant for ticket %s in slot %s", ticket_id, targets[ticket_id][1])
            diff.updated.append(ticket_id)
    for ticket_id in placed:
        _write_entry(_entry(working, targets[ticket_id]), _entry_fields(incoming[ticket_id]))
        if ticket_id in current:
            _logger.debug("Moving entrant for ticket %s to slot %s", ticket_id, targets[ticket_id][1])
            diff.updated.append(ticket_id)
        else:
            _logger.debug("Adding entrant for ticket %s to slot %s", ticket_id, targets[ticket_id][1])
            diff.added.append(ticket_id)

    diff.updated.sort()
    return diff


class RosterReconciler:
    """Single-writer reconcile+persist of the championship roster.

    Commits that lose a race with an external writer (the server manager
    saving the same file) are retried from a fresh read with exponential
    backoff.
    """

    def __init__(
        self,
        roster: RosterFile,
        *,
        max_attempts: int = COMMIT_RETRY_ATTEMPTS,
        initial_wait: float = COMMIT_RETRY_INITIAL_WAIT,
        max_wait: float = COMMIT_RETRY_MAX_WAIT,
    ) -> None:
        self._roster = roster
        self._max_attempts = max(1, max_attempts)
        self._initial_wait = initial_wait
        self._max_wait = max_wait
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """Whether a reconcile+persist sequence is running."""
        return self._lock.locked()

    async def reconcile(
        self,
        entrants: Iterable[Entrant],
        *,
        remove_missing: bool = True,
        hold: Collection[str] = (),
        should_abort: Callable[[], bool] | None = None,
    ) -> RosterDiff:
        """Reconcile *entrants* into the roster and persist the result.

        Raises
        ------
        SyncInProgressError
            Another reconcile is running; this one is rejected, not queued.
        SyncCancelledError
            *should_abort* returned true before the final rename.
        RosterChangedError
            The file kept changing under us for every attempt.
        RosterError
            The roster could not be read or is malformed.
        """
        if self._lock.locked():
            raise SyncInProgressError("A roster commit is already in progress")

        entrant_list = list(entrants)

        def _abort_guard() -> None:
            if should_abort is not None and should_abort():
                raise SyncCancelledError("Sync abandoned before commit")

        async with self._lock:
            wait = self._initial_wait
            for attempt in range(1, self._max_attempts + 1):
                try:
                    snapshot = await self._roster.load()
                    diff = diff_roster(
                        snapshot.document,
                        entrant_list,
                        remove_missing=remove_missing,
                        hold=hold,
                    )
                    if not diff.changed:
                        _logger.debug("Roster %s already up to date", self._roster.path)
                        return diff
                    _abort_guard()
                    await self._roster.commit(snapshot, diff.document, before_replace=_abort_guard)
                    return diff
                except RosterChangedError as exc:
                    if attempt >= self._max_attempts:
                        raise
                    _logger.warning("Error updating roster: %s (retries: %d)", exc, attempt)
                    await asyncio.sleep(wait)
                    wait = min(wait * 2, self._max_wait)
        raise AssertionError("unreachable")  # pragma: no cover
