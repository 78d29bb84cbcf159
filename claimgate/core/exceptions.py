"""
ClaimGate Exception Hierarchy

All exceptions inherit from ClaimGateError for easy catching.

Engine errors carry a stable numeric ``code``. The first three keep the
numbering of the deployed program's error table (6000, 6001, 6002) so
indexers that already decode those codes continue to work.
"""


class ClaimGateError(Exception):
    """Base exception for all ClaimGate errors"""

    code = None

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# ─────────────────────────────────────────────────────────────
# Engine errors
# ─────────────────────────────────────────────────────────────

class Unauthorized(ClaimGateError):
    """Raised when the caller lacks the required role"""
    code = 6000


class InvalidSignature(ClaimGateError):
    """Raised when the offline signer's attestation does not verify"""
    code = 6001


class AlreadyClaimed(ClaimGateError):
    """Raised when a claimant tries to redeem a second time"""
    code = 6002


class AlreadyExists(ClaimGateError):
    """Raised when a singleton record or binding is created twice"""
    code = 6003


class ArithmeticOverflow(ClaimGateError):
    """Raised when a checked counter would exceed its maximum"""
    code = 6004


# ─────────────────────────────────────────────────────────────
# Account and input checks
# ─────────────────────────────────────────────────────────────

class ValidationError(ClaimGateError):
    """Raised when an input value is malformed"""
    pass


class ConstraintViolation(ClaimGateError):
    """Raised when an account does not satisfy an operation's constraints"""
    pass


class NotInitialized(ClaimGateError):
    """Raised when an operation needs state that has not been created yet"""
    pass


# ─────────────────────────────────────────────────────────────
# Token ledger errors (propagated verbatim by the engine)
# ─────────────────────────────────────────────────────────────

class TokenLedgerError(ClaimGateError):
    """Raised when the token ledger rejects an instruction"""
    pass


class InsufficientFunds(TokenLedgerError):
    """Raised when a transfer exceeds the source balance"""
    pass


class AccountNotFound(TokenLedgerError):
    """Raised when a mint or token account does not exist"""
    pass


class MintMismatch(TokenLedgerError):
    """Raised when a transfer crosses two different mints"""
    pass


class AuthorityMismatch(TokenLedgerError):
    """Raised when a transfer is not signed by the source account's authority"""
    pass


# ─────────────────────────────────────────────────────────────
# Persistence
# ─────────────────────────────────────────────────────────────

class StoreError(ClaimGateError):
    """Raised when the state store cannot load or commit"""
    pass


class CorruptRecordError(StoreError):
    """Raised when a persisted record does not match its binary layout"""
    pass


class JournalError(ClaimGateError):
    """Raised when the event journal cannot be written or fails verification"""
    pass


class JournalIntegrityError(JournalError):
    """Raised when the journal hash chain is broken"""
    pass
