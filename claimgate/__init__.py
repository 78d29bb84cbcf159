"""
claimgate/__init__.py

ClaimGate: one-time, signature-gated token distribution.

An owner funds a vault controlled by a program-derived address. Each
eligible claimant redeems an amount attested off-line by a trusted signer,
exactly once. The owner can withdraw whatever is left.
"""

__version__ = "0.3.0"

from claimgate.config import EngineConfig, EngineMode
from claimgate.core.crypto import Ed25519KeyManager, sign_claim
from claimgate.core.derivation import AddressDerivation
from claimgate.core.exceptions import (
    AlreadyClaimed,
    AlreadyExists,
    ArithmeticOverflow,
    ClaimGateError,
    InvalidSignature,
    Unauthorized,
)
from claimgate.core.models import (
    ClaimEvent,
    ClaimMessage,
    ClaimRecord,
    StateRecord,
)
from claimgate.engine import DistributionEngine
from claimgate.store import ClaimLedger, EventJournal, StateStore
from claimgate.token import TokenLedger

__all__ = [
    # Engine
    "DistributionEngine",
    "EngineConfig",
    "EngineMode",
    # Collaborators
    "AddressDerivation",
    "ClaimLedger",
    "EventJournal",
    "StateStore",
    "TokenLedger",
    # Records
    "ClaimEvent",
    "ClaimMessage",
    "ClaimRecord",
    "StateRecord",
    # Signing
    "Ed25519KeyManager",
    "sign_claim",
    # Errors
    "ClaimGateError",
    "Unauthorized",
    "InvalidSignature",
    "AlreadyClaimed",
    "AlreadyExists",
    "ArithmeticOverflow",
]
