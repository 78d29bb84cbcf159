"""
Event journal: append-only, hash-chained JSONL record of ClaimEvents.

Indexers tail this file. Each line links to the previous one:

    previous_hash = SHA-256(JCS(prev_entry.to_dict()))
    first entry   → GENESIS_HASH ("0" * 64)

so dropping, reordering or editing a line is detected by verify().
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from claimgate.core.canonical import canonical_hash
from claimgate.core.exceptions import JournalError, JournalIntegrityError
from claimgate.core.models import ClaimEvent


logger = logging.getLogger(__name__)


@dataclass
class JournalEntry:
    """A single line in the journal"""
    index:         int
    previous_hash: str
    event_type:    str
    data:          Dict[str, Any]

    def to_dict(self) -> dict:
        return {
            "index":         self.index,
            "previous_hash": self.previous_hash,
            "event_type":    self.event_type,
            "data":          self.data,
        }

    @staticmethod
    def from_dict(data: dict) -> "JournalEntry":
        return JournalEntry(
            index=         data["index"],
            previous_hash= data["previous_hash"],
            event_type=    data["event_type"],
            data=          data["data"],
        )

    def compute_hash(self) -> str:
        """Hash of this entry, referenced by the next entry's previous_hash"""
        return canonical_hash(self.to_dict())


class EventJournal:
    """
    Append-only event log.

    The file is re-read and verified on open; appends are fsynced before
    the in-memory chain head advances.
    """

    GENESIS_HASH = "0" * 64

    def __init__(self, path: Path):
        self.path    = Path(path)
        self.entries: List[JournalEntry] = []
        self._lock   = threading.Lock()

        if self.path.exists():
            self._load()
            self.verify()

    def append_claim(self, event: ClaimEvent) -> JournalEntry:
        return self._append("claim", event.to_dict())

    def claim_events(self) -> List[ClaimEvent]:
        return [
            ClaimEvent.from_dict(e.data)
            for e in self.entries if e.event_type == "claim"
        ]

    def head_hash(self) -> str:
        return self.entries[-1].compute_hash() if self.entries else self.GENESIS_HASH

    def verify(self) -> None:
        """Raise JournalIntegrityError on the first broken link or index gap."""
        expected_prev = self.GENESIS_HASH
        for position, entry in enumerate(self.entries):
            if entry.index != position:
                raise JournalIntegrityError(
                    f"Index gap at line {position + 1}",
                    {"expected": position, "got": entry.index},
                )
            if entry.previous_hash != expected_prev:
                raise JournalIntegrityError(
                    f"Chain break at index {entry.index}",
                    {"expected": expected_prev, "got": entry.previous_hash},
                )
            expected_prev = entry.compute_hash()

    def _append(self, event_type: str, data: Dict[str, Any]) -> JournalEntry:
        with self._lock:
            entry = JournalEntry(
                index=         len(self.entries),
                previous_hash= self.head_hash(),
                event_type=    event_type,
                data=          data,
            )
            self.path.parent.mkdir(parents=True, exist_ok=True)
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry.to_dict(), sort_keys=True) + "\n")
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise JournalError(f"Failed to write journal entry: {e}") from e
            self.entries.append(entry)
        logger.debug(
            "Journal entry appended",
            extra={"event": "journal.append", "index": entry.index},
        )
        return entry

    def _load(self) -> None:
        self.entries = []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, 1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        self.entries.append(JournalEntry.from_dict(json.loads(line)))
                    except (json.JSONDecodeError, KeyError, TypeError) as e:
                        raise JournalError(f"Invalid entry at line {line_num}: {e}") from e
        except OSError as e:
            raise JournalError(f"Failed to load journal: {e}") from e
