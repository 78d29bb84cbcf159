"""
claimgate/core/models.py

ClaimGate Data Model — layout version 1

═══════════════════════════════════════════════════════════════════
LAYOUT CONTRACTS — Changes require a LAYOUT_VERSION bump.
═══════════════════════════════════════════════════════════════════

CONTRACT 1 — Identities
    owner, claimant, signer key, token identifier, program id and account
    addresses are 32-byte values, written as 64-char lowercase hex.

CONTRACT 2 — Record framing
    bytes = discriminator[8] || version:u8 || body
    discriminator = SHA-256("account:<RecordName>")[:8]

CONTRACT 3 — StateRecord body (little-endian)
    owner[32] token[32] vault[32] signer[32] total_claimed:u64 bump:u8
    vault == 32 zero bytes  → vault not bound yet

CONTRACT 4 — ClaimRecord body
    is_claimed:u8   (0 or 1, nothing else)

CONTRACT 5 — ClaimMessage (the bytes the offline signer signs)
    claimant[32] || amount:u64 little-endian      (40 bytes, no framing)

CONTRACT 6 — Amounts and counters
    unsigned 64-bit. total_claimed uses checked addition; overflow is an
    error, never a wrap.
═══════════════════════════════════════════════════════════════════
"""

import hashlib
import re
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from claimgate.core.exceptions import (
    ArithmeticOverflow,
    CorruptRecordError,
    ValidationError,
)
from claimgate.core.time import event_timestamp


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────

LAYOUT_VERSION = 1
U64_MAX        = 2 ** 64 - 1

_IDENTITY_RE   = re.compile(r"^[0-9a-f]{64}$")
_EMPTY_ADDRESS = bytes(32)


def _discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode("utf-8")).digest()[:8]


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────

def validate_identity(value: Any, label: str = "identity") -> str:
    """
    Check that value is a 64-char lowercase hex identity and return it.
    Raises ValidationError otherwise.
    """
    if not isinstance(value, str) or not _IDENTITY_RE.match(value):
        raise ValidationError(
            f"{label} must be 64 lowercase hex characters",
            {label: repr(value)},
        )
    return value


def validate_amount(value: Any, label: str = "amount") -> int:
    """Amounts are positive integers that fit in u64."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer", {label: repr(value)})
    if value <= 0 or value > U64_MAX:
        raise ValidationError(
            f"{label} must be between 1 and {U64_MAX}", {label: value}
        )
    return value


def checked_add(current: int, amount: int) -> int:
    """u64 addition that raises ArithmeticOverflow instead of wrapping."""
    total = current + amount
    if total > U64_MAX:
        raise ArithmeticOverflow(
            "total_claimed would overflow",
            {"current": current, "amount": amount},
        )
    return total


def _unframe(name: str, data: bytes, body_size: int) -> bytes:
    expected = 9 + body_size
    if len(data) != expected:
        raise CorruptRecordError(
            f"{name} must be {expected} bytes", {"got": len(data)}
        )
    if data[:8] != _discriminator(name):
        raise CorruptRecordError(f"{name} discriminator mismatch")
    if data[8] != LAYOUT_VERSION:
        raise CorruptRecordError(
            f"Unsupported {name} layout version", {"version": data[8]}
        )
    return data[9:]


# ─────────────────────────────────────────────────────────────
# StateRecord: one per deployment
# ─────────────────────────────────────────────────────────────

@dataclass
class StateRecord:
    """
    Deployment singleton: configuration plus the global payout counter.

    owner, token_identifier, signer_key and derivation_bump are fixed at
    initialize(). vault_reference is set once by create_vault().
    total_claimed only grows, by amounts actually transferred.
    """

    owner:            str
    token_identifier: str
    signer_key:       str
    derivation_bump:  int
    vault_reference:  Optional[str] = None
    total_claimed:    int = 0

    NAME      = "StateRecord"
    _BODY     = struct.Struct("<32s32s32s32sQB")
    SIZE      = 9 + _BODY.size

    def to_bytes(self) -> bytes:
        vault = (
            bytes.fromhex(self.vault_reference)
            if self.vault_reference else _EMPTY_ADDRESS
        )
        body = self._BODY.pack(
            bytes.fromhex(self.owner),
            bytes.fromhex(self.token_identifier),
            vault,
            bytes.fromhex(self.signer_key),
            self.total_claimed,
            self.derivation_bump,
        )
        return _discriminator(self.NAME) + bytes([LAYOUT_VERSION]) + body

    @classmethod
    def from_bytes(cls, data: bytes) -> "StateRecord":
        body = _unframe(cls.NAME, data, cls._BODY.size)
        owner, token, vault, signer, total, bump = cls._BODY.unpack(body)
        return cls(
            owner=            owner.hex(),
            token_identifier= token.hex(),
            signer_key=       signer.hex(),
            derivation_bump=  bump,
            vault_reference=  None if vault == _EMPTY_ADDRESS else vault.hex(),
            total_claimed=    total,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner":            self.owner,
            "token_identifier": self.token_identifier,
            "vault_reference":  self.vault_reference,
            "signer_key":       self.signer_key,
            "total_claimed":    self.total_claimed,
            "derivation_bump":  self.derivation_bump,
        }


# ─────────────────────────────────────────────────────────────
# ClaimRecord: one per claimant
# ─────────────────────────────────────────────────────────────

@dataclass
class ClaimRecord:
    """Idempotency marker. is_claimed goes False → True once, never back."""

    is_claimed: bool = False

    NAME  = "ClaimRecord"
    SIZE  = 10

    def to_bytes(self) -> bytes:
        return (
            _discriminator(self.NAME)
            + bytes([LAYOUT_VERSION])
            + bytes([1 if self.is_claimed else 0])
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "ClaimRecord":
        body = _unframe(cls.NAME, data, 1)
        if body[0] not in (0, 1):
            raise CorruptRecordError(
                "ClaimRecord.is_claimed must be 0 or 1", {"got": body[0]}
            )
        return cls(is_claimed=bool(body[0]))


# ─────────────────────────────────────────────────────────────
# ClaimMessage: what the offline signer attests to
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClaimMessage:
    claimant: str
    amount:   int

    _LAYOUT = struct.Struct("<32sQ")

    def to_bytes(self) -> bytes:
        validate_identity(self.claimant, "claimant")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValidationError("amount must be an integer")
        if not 0 <= self.amount <= U64_MAX:
            raise ValidationError("amount must fit in u64", {"amount": self.amount})
        return self._LAYOUT.pack(bytes.fromhex(self.claimant), self.amount)


# ─────────────────────────────────────────────────────────────
# ClaimEvent: emitted after every committed claim
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClaimEvent:
    claimant:      str
    amount:        int
    total_claimed: int
    timestamp:     str = field(default_factory=event_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claimant":      self.claimant,
            "amount":        self.amount,
            "total_claimed": self.total_claimed,
            "timestamp":     self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClaimEvent":
        return cls(
            claimant=      data["claimant"],
            amount=        data["amount"],
            total_claimed= data["total_claimed"],
            timestamp=     data["timestamp"],
        )
