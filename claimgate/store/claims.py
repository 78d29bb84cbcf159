"""
Claim Ledger: one-time redemption markers, one per claimant.

Each claimant's ClaimRecord lives at derive("claim", claimant). Records are
created lazily on the first claim attempt and flipped False → True exactly
once. Both operations run inside a store transaction, so concurrent
callers for the same claimant see one winner.
"""

import logging
from typing import Optional, Tuple

from claimgate.core.derivation import AddressDerivation
from claimgate.core.exceptions import AlreadyClaimed
from claimgate.core.models import ClaimRecord, validate_identity
from claimgate.store.store import StateStore


logger = logging.getLogger(__name__)

CLAIM_SEED = b"claim"


class ClaimLedger:

    def __init__(self, store: StateStore, derivation: AddressDerivation) -> None:
        self.store      = store
        self.derivation = derivation

    def address_for(self, claimant: str) -> Tuple[str, int]:
        validate_identity(claimant, "claimant")
        return self.derivation.derive(CLAIM_SEED, bytes.fromhex(claimant))

    def get(self, claimant: str) -> Optional[ClaimRecord]:
        address, _ = self.address_for(claimant)
        data = self.store.get(address)
        return ClaimRecord.from_bytes(data) if data is not None else None

    def is_claimed(self, claimant: str) -> bool:
        record = self.get(claimant)
        return record is not None and record.is_claimed

    def get_or_create(self, claimant: str) -> ClaimRecord:
        """Return the claimant's record, creating an unclaimed one if absent."""
        address, _ = self.address_for(claimant)
        with self.store.transaction():
            data = self.store.get(address)
            if data is not None:
                return ClaimRecord.from_bytes(data)
            record = ClaimRecord(is_claimed=False)
            self.store.create(address, record.to_bytes())
            logger.debug(
                "Claim record created",
                extra={"event": "claims.created", "claimant": claimant[:16]},
            )
            return record

    def mark_claimed(self, claimant: str) -> ClaimRecord:
        """
        Compare-and-set is_claimed False → True.

        Creates the record if absent. Raises AlreadyClaimed if it is
        already set; nothing is written in that case.
        """
        address, _ = self.address_for(claimant)
        with self.store.transaction():
            record = self.get_or_create(claimant)
            if record.is_claimed:
                raise AlreadyClaimed("Already claimed", {"claimant": claimant})
            record = ClaimRecord(is_claimed=True)
            self.store.put(address, record.to_bytes())
            return record
