"""ACSM championship file access.

The championship definition is a JSON document owned by the server
manager, which may rewrite it at any time.  Reads record the file's
modification time; commits refuse to replace a file that changed since it
was read, and replace it atomically (write to a temporary file in the same
directory, ``fsync``, then ``os.replace``) so a crash at any point leaves
either the old or the new document on disk, never a mixture.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import shutil
import tempfile
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from ticketgate._constants import (
    KEY_AVAILABLE_CARS,
    KEY_CLASSES,
    KEY_ENTRANTS,
    KEY_GUID,
    KEY_SOURCE_TICKET,
)
from ticketgate.exceptions import RosterChangedError, RosterError

_logger = logging.getLogger(__name__)


class EntryOwner(StrEnum):
    FREE = "free"
    GATEWAY = "gateway"
    EXTERNAL = "external"


def entry_owner(entry: dict[str, Any]) -> EntryOwner:
    """Classify a roster entry.

    Entries tagged with a source ticket belong to the gateway; entries
    with a simulator id but no tag were added by hand and are never touched.
    """
    if str(entry.get(KEY_SOURCE_TICKET) or "").strip():
        return EntryOwner.GATEWAY
    if str(entry.get(KEY_GUID) or "").strip():
        return EntryOwner.EXTERNAL
    return EntryOwner.FREE


def iter_entries(document: dict[str, Any]) -> Iterator[tuple[int, str, dict[str, Any]]]:
    """Yield ``(class_index, slot_id, entry)`` for every roster entry.

    Raises
    ------
    RosterError
        The document does not have the expected Classes/Entrants shape.
    """
    classes = document.get(KEY_CLASSES)
    if not isinstance(classes, list):
        raise RosterError(f"{KEY_CLASSES} not found in JSON or not an array")
    for index, cls in enumerate(classes):
        if not isinstance(cls, dict):
            raise RosterError(f"{KEY_CLASSES}[{index}] is not an object")
        cars = cls.get(KEY_AVAILABLE_CARS)
        if not isinstance(cars, list) or not all(isinstance(car, str) for car in cars):
            raise RosterError(f"{KEY_AVAILABLE_CARS} of class {index} is missing or not an array of strings")
        entrants = cls.get(KEY_ENTRANTS)
        if not isinstance(entrants, dict):
            raise RosterError(f"{KEY_ENTRANTS} of class {index} is missing or not an object")
        for slot_id, entry in entrants.items():
            if not isinstance(entry, dict):
                raise RosterError(f"Entrant {slot_id} of class {index} is not an object")
            yield index, slot_id, entry


def class_for_car(document: dict[str, Any], car_id: str) -> int | None:
    """Index of the first class that offers *car_id*, if any."""
    for index, cls in enumerate(document.get(KEY_CLASSES) or []):
        if isinstance(cls, dict) and car_id in (cls.get(KEY_AVAILABLE_CARS) or []):
            return index
    return None


def entry_at(document: dict[str, Any], class_index: int, slot_id: str) -> dict[str, Any] | None:
    entrants = document[KEY_CLASSES][class_index].get(KEY_ENTRANTS) or {}
    entry = entrants.get(slot_id)
    return entry if isinstance(entry, dict) else None


@dataclass(frozen=True, slots=True)
class RosterSnapshot:
    """A roster document together with the file state it was read from."""

    path: Path
    document: dict[str, Any]
    mtime_ns: int


def _mtime_ns(path: Path) -> int:
    try:
        return path.stat().st_mtime_ns
    except OSError as exc:
        raise RosterError(f"Failed to stat {path}: {exc}", path=str(path)) from exc


def read_roster(path: Path) -> RosterSnapshot:
    """Read and validate the championship document at *path*.

    Raises
    ------
    RosterChangedError
        The file was modified while it was being read.
    RosterError
        The file is unreadable, not UTF-8 JSON, or not a championship document.
    """
    before = _mtime_ns(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RosterError(f"Failed to read {path}: {exc}", path=str(path)) from exc
    except UnicodeDecodeError as exc:
        raise RosterError(f"{path} is not valid UTF-8: {exc}", path=str(path)) from exc
    if _mtime_ns(path) != before:
        raise RosterChangedError(f"{path} modified while reading", path=str(path))

    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RosterError(f"{path} is not valid JSON: {exc}", path=str(path)) from exc
    if not isinstance(document, dict):
        raise RosterError(f"{path} does not contain a JSON object", path=str(path))
    # Validates the structure up front so diffing can index freely.
    for _ in iter_entries(document):
        pass
    return RosterSnapshot(path=path, document=document, mtime_ns=before)


def write_roster(
    snapshot: RosterSnapshot,
    document: dict[str, Any],
    *,
    backup: bool = True,
    before_replace: Callable[[], None] | None = None,
) -> Path | None:
    """Atomically replace the file read into *snapshot* with *document*.

    *before_replace* runs right before the final rename; raising from it
    abandons the commit with the original file untouched.

    Returns the backup path, if one was written.

    Raises
    ------
    RosterChangedError
        The file changed since *snapshot* was read.
    RosterError
        The new document could not be written; the original file is intact.
    """
    path = snapshot.path
    if _mtime_ns(path) != snapshot.mtime_ns:
        raise RosterChangedError(f"{path} modified while updating data", path=str(path))

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as exc:
        raise RosterError(f"Failed to create temporary file next to {path}: {exc}", path=str(path)) from exc
    tmp_path = Path(tmp_name)
    backup_path: Path | None = None
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2, ensure_ascii=False)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        shutil.copymode(path, tmp_path)

        if _mtime_ns(path) != snapshot.mtime_ns:
            raise RosterChangedError(f"{path} modified while writing temporary file", path=str(path))

        if backup:
            backup_path = path.with_name(f"{path.name}.backup_{snapshot.mtime_ns // 1_000_000_000}")
            shutil.copy2(path, backup_path)

        if before_replace is not None:
            before_replace()
        os.replace(tmp_path, path)
    except OSError as exc:
        raise RosterError(f"Failed to write {path}: {exc}", path=str(path)) from exc
    finally:
        with contextlib.suppress(FileNotFoundError):
            tmp_path.unlink()

    _logger.info("Roster %s updated%s", path, f", backup file: {backup_path}" if backup_path else "")
    return backup_path


class RosterFile:
    """Async facade over the championship file; blocking I/O runs in a thread."""

    def __init__(self, path: Path, *, backup: bool = True) -> None:
        self.path = path
        self._backup = backup

    async def load(self) -> RosterSnapshot:
        return await asyncio.to_thread(read_roster, self.path)

    async def commit(
        self,
        snapshot: RosterSnapshot,
        document: dict[str, Any],
        *,
        before_replace: Callable[[], None] | None = None,
    ) -> Path | None:
        return await asyncio.to_thread(
            write_roster,
            snapshot,
            document,
            backup=self._backup,
            before_replace=before_replace,
        )
