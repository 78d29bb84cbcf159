"""
Persistent account store for one deployment.

Holds the binary records the engine owns (the StateRecord and every
ClaimRecord), keyed by their derived address. Without a path it is
memory-only, which is what the tests and embedded callers use.

On-disk format (accounts.json):

    {
      "program_id":     "<64 hex>",
      "layout_version": 1,
      "accounts":       { "<address hex>": "<record bytes hex>", ... }
    }

Writes go through transaction(): changes are staged in memory and the
whole account set is committed with one atomic file replace.
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from claimgate.core.exceptions import AlreadyExists, StoreError
from claimgate.core.models import LAYOUT_VERSION, StateRecord, validate_identity
from claimgate.store.files import atomic_write_json, read_json


logger = logging.getLogger(__name__)


class StateStore:
    """
    Address → record bytes, with nested all-or-nothing transactions.

    Thread-safe: every read and every transaction holds the same
    re-entrant lock, so a transaction is serializable against all other
    access through this store.
    """

    def __init__(self, program_id: str, path: Optional[Path] = None) -> None:
        self.program_id = validate_identity(program_id, "program_id")
        self.path       = Path(path) if path else None

        self._lock      = threading.RLock()
        self._committed: Dict[str, bytes]           = {}
        self._staged:    Optional[Dict[str, bytes]] = None

        if self.path is not None:
            self._load()

    # ── Reads ─────────────────────────────────────────────────

    def get(self, address: str) -> Optional[bytes]:
        with self._lock:
            if self._staged is not None and address in self._staged:
                return self._staged[address]
            return self._committed.get(address)

    def exists(self, address: str) -> bool:
        return self.get(address) is not None

    def addresses(self) -> List[str]:
        with self._lock:
            merged = dict(self._committed)
            if self._staged:
                merged.update(self._staged)
            return sorted(merged)

    def load_state(self, address: str) -> Optional[StateRecord]:
        data = self.get(address)
        return StateRecord.from_bytes(data) if data is not None else None

    # ── Writes ────────────────────────────────────────────────

    def put(self, address: str, data: bytes) -> None:
        with self.transaction():
            self._staged[address] = bytes(data)

    def create(self, address: str, data: bytes) -> None:
        """Insert a new record. Raises AlreadyExists if address is taken."""
        with self.transaction():
            if self.exists(address):
                raise AlreadyExists("Account already exists", {"address": address})
            self._staged[address] = bytes(data)

    @contextmanager
    def transaction(self) -> Iterator["StateStore"]:
        """
        Stage writes; commit them atomically when the outermost scope exits
        cleanly. An exception discards everything staged since the scope
        was entered and propagates unchanged.
        """
        with self._lock:
            outermost = self._staged is None
            if outermost:
                self._staged = {}
            snapshot = dict(self._staged)
            try:
                yield self
                if outermost:
                    self._commit(self._staged)
            except BaseException:
                self._staged = snapshot
                raise
            finally:
                if outermost:
                    self._staged = None

    def checkpoint(self) -> Dict[str, bytes]:
        """Copy of the committed records, for restore()."""
        with self._lock:
            return dict(self._committed)

    def restore(self, checkpoint: Dict[str, bytes]) -> bool:
        """
        Return the committed records, in memory and on disk, to checkpoint.

        Undoes a commit when a later step of the same operation fails after
        this store has already written. Returns True if anything changed.
        Raises StoreError if the file cannot be rewritten; memory is
        restored either way.
        """
        with self._lock:
            if self._staged is not None:
                raise StoreError("Cannot restore inside an open transaction")
            if checkpoint == self._committed:
                return False
            self._committed = dict(checkpoint)
            self._write(self._committed)
        logger.warning(
            "Store restored to checkpoint",
            extra={"event": "store.restore", "records": len(checkpoint)},
        )
        return True

    # ── Internals ─────────────────────────────────────────────

    def _write(self, records: Dict[str, bytes]) -> None:
        if self.path is None:
            return
        atomic_write_json(self.path, {
            "program_id":     self.program_id,
            "layout_version": LAYOUT_VERSION,
            "accounts":       {a: d.hex() for a, d in records.items()},
        })

    def _commit(self, staged: Dict[str, bytes]) -> None:
        if not staged:
            return
        merged = dict(self._committed)
        merged.update(staged)
        self._write(merged)
        self._committed = merged
        logger.debug(
            "Store committed",
            extra={"event": "store.commit", "records": len(staged)},
        )

    def _load(self) -> None:
        data = read_json(self.path)
        if data is None:
            return
        if data.get("program_id") != self.program_id:
            raise StoreError(
                "Store belongs to a different program",
                {"expected": self.program_id, "found": data.get("program_id")},
            )
        if data.get("layout_version") != LAYOUT_VERSION:
            raise StoreError(
                "Unsupported store layout version",
                {"found": data.get("layout_version")},
            )
        try:
            self._committed = {
                address: bytes.fromhex(record)
                for address, record in data.get("accounts", {}).items()
            }
        except (TypeError, ValueError) as e:
            raise StoreError(f"Malformed record in {self.path}: {e}") from e

    def __repr__(self) -> str:
        return (
            f"StateStore(program_id={self.program_id[:16]}..., "
            f"records={len(self._committed)})"
        )
