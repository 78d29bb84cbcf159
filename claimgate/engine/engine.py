"""
Distribution engine: initialize, create_vault, claim, withdraw.

Every operation runs as one serializable, all-or-nothing unit:

    engine lock  →  token ledger transaction  →  store transaction

If anything inside raises, the token ledger restores its balances and the
store discards every staged record, so no partial effect is visible. The
store commits first; if the token ledger then fails to persist, the store
is restored to its checkpoint, on disk as well as in memory. This is what
makes the claim ordering below safe: the redemption flag is set before the
transfer, and a failed transfer rolls the flag back with it.

claim() contract, in this exact order:
  1. Rebuild ClaimMessage(claimant, amount).to_bytes()
  2. Verify the Ed25519 signature against state.signer_key    → InvalidSignature
     (skipped only in EngineMode.TRUSTING)
  3. Get-or-create the claimant's ClaimRecord; if set         → AlreadyClaimed
  4. Set is_claimed = True
  5. Transfer vault → recipient, authority = state address    → ledger errors
  6. total_claimed += amount (checked u64)                    → ArithmeticOverflow
  7. Commit, then emit ClaimEvent. Journal and listener failures after
     commit are logged and do not change the result.
"""

import functools
import logging
import threading
import warnings
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from claimgate.config import EngineConfig, EngineMode
from claimgate.core.crypto import Ed25519KeyManager
from claimgate.core.derivation import AddressDerivation
from claimgate.core.exceptions import (
    AlreadyExists,
    ClaimGateError,
    ConstraintViolation,
    InvalidSignature,
    JournalError,
    NotInitialized,
    StoreError,
    Unauthorized,
)
from claimgate.core.models import (
    ClaimEvent,
    ClaimMessage,
    StateRecord,
    checked_add,
    validate_amount,
    validate_identity,
)
from claimgate.store.claims import ClaimLedger
from claimgate.store.journal import EventJournal
from claimgate.store.store import StateStore
from claimgate.token.ledger import TokenAccount, TokenLedger


logger = logging.getLogger(__name__)

STATE_SEED = b"state"
VAULT_SEED = b"vault"

ClaimListener = Callable[[ClaimEvent], None]


def _logged(operation: str):
    """Log rejected operations at WARNING and re-raise them unchanged."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except ClaimGateError as e:
                logger.warning(
                    "%s rejected: %s", operation, e,
                    extra={"event": f"engine.{operation}.rejected", "error": type(e).__name__},
                )
                raise
        return wrapper
    return decorator


class DistributionEngine:
    """
    One-time, signature-gated token distribution for a single deployment.

    Collaborators are injected: the StateStore holding the StateRecord and
    ClaimRecords, the TokenLedger that moves balances, and the
    AddressDerivation bound to this deployment's program id.
    """

    def __init__(
        self,
        store:        StateStore,
        token_ledger: TokenLedger,
        derivation:   AddressDerivation,
        mode:         EngineMode = EngineMode.STRICT,
        journal:      Optional[EventJournal] = None,
    ) -> None:
        if store.program_id != derivation.program_id:
            raise ConstraintViolation(
                "Store and derivation are bound to different programs",
                {"store": store.program_id, "derivation": derivation.program_id},
            )
        self.store        = store
        self.token_ledger = token_ledger
        self.derivation   = derivation
        self.mode         = mode
        self.journal      = journal
        self.claims       = ClaimLedger(store, derivation)

        self.state_address, self.state_bump = derivation.derive(STATE_SEED)
        self.vault_address, self.vault_bump = derivation.derive(VAULT_SEED)

        self._lock      = threading.RLock()
        self._listeners: List[ClaimListener] = []

        if mode is EngineMode.TRUSTING:
            warnings.warn(
                "ClaimGate engine running in TRUSTING mode: claim signatures "
                "are NOT verified. Never use this mode in production."
            )

    @classmethod
    def from_config(cls, config: EngineConfig) -> "DistributionEngine":
        """Build the engine and its persistent collaborators under config.data_dir."""
        journal_path = config.journal_path
        return cls(
            store=        StateStore(config.program_id, config.store_path),
            token_ledger= TokenLedger(config.token_ledger_path),
            derivation=   AddressDerivation(config.program_id),
            mode=         config.mode,
            journal=      EventJournal(journal_path) if journal_path else None,
        )

    # ── Queries ───────────────────────────────────────────────

    def get_state(self) -> StateRecord:
        """Current StateRecord. Raises NotInitialized before initialize()."""
        state = self.store.load_state(self.state_address)
        if state is None:
            raise NotInitialized("Distribution state has not been initialized")
        return state

    def is_initialized(self) -> bool:
        return self.store.exists(self.state_address)

    def is_claimed(self, claimant: str) -> bool:
        return self.claims.is_claimed(claimant)

    def vault_balance(self) -> int:
        state = self.get_state()
        if state.vault_reference is None:
            raise NotInitialized("Vault has not been created")
        return self.token_ledger.balance(state.vault_reference)

    def subscribe(self, listener: ClaimListener) -> None:
        """Call listener with every ClaimEvent after its claim commits."""
        self._listeners.append(listener)

    # ── Operations ────────────────────────────────────────────

    @_logged("initialize")
    def initialize(
        self,
        owner:            str,
        token_identifier: str,
        signer_key:       str,
    ) -> StateRecord:
        """
        Create the deployment's StateRecord. owner becomes the only identity
        allowed to create the vault and withdraw. signer_key is the offline
        attester's Ed25519 public key; it cannot be changed later.
        """
        validate_identity(owner, "owner")
        validate_identity(token_identifier, "token_identifier")
        validate_identity(signer_key, "signer_key")

        with self._atomic():
            if self.store.exists(self.state_address):
                raise AlreadyExists(
                    "Distribution state already initialized",
                    {"state": self.state_address},
                )
            self.token_ledger.get_mint(token_identifier)
            state = StateRecord(
                owner=            owner,
                token_identifier= token_identifier,
                signer_key=       signer_key,
                derivation_bump=  self.state_bump,
            )
            self.store.create(self.state_address, state.to_bytes())

        logger.info(
            "Distribution initialized",
            extra={"event": "engine.initialized", "owner": owner[:16], "token": token_identifier[:16]},
        )
        return state

    @_logged("create_vault")
    def create_vault(self, owner: str, token_identifier: str) -> str:
        """
        Open the vault token account at derive("vault") with the state
        address as its sole authority. Returns the vault address.
        """
        with self._atomic():
            state = self.get_state()
            self._require_owner(state, owner)
            if token_identifier != state.token_identifier:
                raise ConstraintViolation(
                    "Token does not match the configured token",
                    {"expected": state.token_identifier, "got": token_identifier},
                )
            if state.vault_reference is not None:
                raise AlreadyExists(
                    "Vault already bound", {"vault": state.vault_reference}
                )
            self.token_ledger.create_account(
                mint=    state.token_identifier,
                owner=   self.state_address,
                address= self.vault_address,
            )
            state.vault_reference = self.vault_address
            self.store.put(self.state_address, state.to_bytes())

        logger.info(
            "Vault created",
            extra={"event": "engine.vault_created", "vault": self.vault_address[:16]},
        )
        return self.vault_address

    @_logged("withdraw")
    def withdraw(self, owner: str, amount: int, destination: str) -> None:
        """Owner-only transfer of unclaimed funds from the vault."""
        validate_amount(amount)
        with self._atomic():
            state = self.get_state()
            self._require_owner(state, owner)
            vault = self._require_vault(state)
            self._require_token_account(destination, state)
            self.token_ledger.transfer(
                source=      vault,
                destination= destination,
                amount=      amount,
                authority=   self._act_as_state(state),
            )

        logger.info(
            "Withdrawal completed",
            extra={"event": "engine.withdraw", "amount": amount, "destination": destination[:16]},
        )

    @_logged("claim")
    def claim(
        self,
        claimant:  str,
        amount:    int,
        signature: bytes,
        recipient: str,
    ) -> ClaimEvent:
        """
        Redeem amount for claimant, once, against the offline signer's
        signature over (claimant, amount). recipient must be a token account
        of the configured mint owned by claimant.
        """
        validate_identity(claimant, "claimant")
        validate_amount(amount)
        state   = self.get_state()
        message = ClaimMessage(claimant=claimant, amount=amount).to_bytes()

        if self.mode.verifies_signatures:
            if not Ed25519KeyManager.verify_detached(message, signature, state.signer_key):
                raise InvalidSignature(
                    "Signature does not match signer key",
                    {"claimant": claimant, "amount": amount},
                )

        with self._atomic():
            state = self.get_state()
            vault = self._require_vault(state)
            account = self._require_token_account(recipient, state)
            if account.owner != claimant:
                raise ConstraintViolation(
                    "Recipient account is not owned by the claimant",
                    {"recipient": recipient, "claimant": claimant},
                )

            self.claims.mark_claimed(claimant)
            self.token_ledger.transfer(
                source=      vault,
                destination= recipient,
                amount=      amount,
                authority=   self._act_as_state(state),
            )
            state.total_claimed = checked_add(state.total_claimed, amount)
            self.store.put(self.state_address, state.to_bytes())

        event = ClaimEvent(
            claimant=      claimant,
            amount=        amount,
            total_claimed= state.total_claimed,
        )
        logger.info(
            "Claim paid",
            extra={"event": "engine.claim", "claimant": claimant[:16], "amount": amount},
        )
        self._emit(event)
        return event

    # ── Internals ─────────────────────────────────────────────

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        with self._lock:
            checkpoint = self.store.checkpoint()
            try:
                with self.token_ledger.transaction():
                    with self.store.transaction():
                        yield
            except BaseException:
                self._restore_store(checkpoint)
                raise

    def _restore_store(self, checkpoint) -> None:
        try:
            self.store.restore(checkpoint)
        except StoreError:
            logger.error(
                "Store could not be restored after a failed operation",
                extra={"event": "engine.restore_failed"},
                exc_info=True,
            )

    def _require_owner(self, state: StateRecord, caller: str) -> None:
        if caller != state.owner:
            raise Unauthorized("Caller is not the owner", {"caller": caller})

    def _require_vault(self, state: StateRecord) -> str:
        if state.vault_reference is None:
            raise NotInitialized("Vault has not been created")
        vault = self.token_ledger.get_account(state.vault_reference)
        if vault.mint != state.token_identifier or vault.owner != self.state_address:
            raise ConstraintViolation(
                "Vault is not controlled by the distribution state",
                {"vault": state.vault_reference},
            )
        return vault.address

    def _require_token_account(self, address: str, state: StateRecord) -> TokenAccount:
        validate_identity(address, "token_account")
        account = self.token_ledger.get_account(address)
        if account.mint != state.token_identifier:
            raise ConstraintViolation(
                "Account does not hold the configured token",
                {"account": address, "mint": account.mint},
            )
        return account

    def _act_as_state(self, state: StateRecord) -> str:
        return self.derivation.act_as_authority(
            self.state_address, STATE_SEED, bump=state.derivation_bump
        )

    def _emit(self, event: ClaimEvent) -> None:
        # The claim is committed; notification failures cannot undo it.
        if self.journal is not None:
            try:
                self.journal.append_claim(event)
            except JournalError:
                logger.error(
                    "Claim committed but journal append failed",
                    extra={"event": "engine.journal_failed", "claimant": event.claimant[:16]},
                    exc_info=True,
                )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.error(
                    "Claim listener failed",
                    extra={"event": "engine.listener_failed", "claimant": event.claimant[:16]},
                    exc_info=True,
                )

    def __repr__(self) -> str:
        return (
            f"DistributionEngine(program_id={self.derivation.program_id[:16]}..., "
            f"mode={self.mode.value})"
        )
