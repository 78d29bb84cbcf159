"""
Reference token ledger.

Stands in for the host platform's fungible-token program: it holds mints
and token accounts, executes transfers, and refuses any transfer that is
not signed by the source account's owner. The distribution engine treats
it as an opaque collaborator and only calls:

    get_mint(mint)
    get_account(address)
    create_account(mint, owner, address)
    transfer(source, destination, amount, authority)
    transaction()

Balances never go negative. A transfer either fully applies or raises.
"""

import copy
import logging
import secrets
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional

from claimgate.core.exceptions import (
    AccountNotFound,
    AlreadyExists,
    ArithmeticOverflow,
    AuthorityMismatch,
    InsufficientFunds,
    MintMismatch,
)
from claimgate.core.models import U64_MAX, validate_amount, validate_identity
from claimgate.store.files import atomic_write_json, read_json


logger = logging.getLogger(__name__)


@dataclass
class Mint:
    """A fungible asset. Only mint_authority may issue new supply."""
    mint:           str
    mint_authority: str
    decimals:       int = 6
    supply:         int = 0


@dataclass
class TokenAccount:
    """
    Balance of one mint. owner is the identity allowed to move funds out:
    a user key, or a program-derived address acting through its program.
    """
    address: str
    mint:    str
    owner:   str
    amount:  int = 0


class TokenLedger:
    """
    In-process token ledger with optional JSON persistence.

    Thread-safe via an internal re-entrant lock. transaction() holds that
    lock for its whole body and restores the pre-transaction snapshot if
    the body raises, so several instructions can be committed as one.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else None
        self._lock     = threading.RLock()
        self._depth    = 0
        self._mints:    Dict[str, Mint]         = {}
        self._accounts: Dict[str, TokenAccount] = {}

        if self.path is not None:
            self._load()

    # ── Queries ───────────────────────────────────────────────

    def get_mint(self, mint: str) -> Mint:
        with self._lock:
            if mint not in self._mints:
                raise AccountNotFound("Mint not found", {"mint": mint})
            return copy.copy(self._mints[mint])

    def get_account(self, address: str) -> TokenAccount:
        with self._lock:
            if address not in self._accounts:
                raise AccountNotFound("Token account not found", {"address": address})
            return copy.copy(self._accounts[address])

    def has_account(self, address: str) -> bool:
        with self._lock:
            return address in self._accounts

    def balance(self, address: str) -> int:
        return self.get_account(address).amount

    def find_account(self, mint: str, owner: str) -> Optional[TokenAccount]:
        """First account of mint owned by owner, or None."""
        with self._lock:
            for account in self._accounts.values():
                if account.mint == mint and account.owner == owner:
                    return copy.copy(account)
        return None

    # ── Instructions ──────────────────────────────────────────

    def create_mint(self, mint_authority: str, decimals: int = 6) -> str:
        """Create a new mint with a random identifier and return it."""
        validate_identity(mint_authority, "mint_authority")
        with self.transaction():
            mint = secrets.token_hex(32)
            self._mints[mint] = Mint(
                mint=mint, mint_authority=mint_authority, decimals=decimals
            )
        logger.info(
            "Mint created",
            extra={"event": "token.mint_created", "mint": mint[:16]},
        )
        return mint

    def create_account(
        self,
        mint:    str,
        owner:   str,
        address: Optional[str] = None,
    ) -> str:
        """
        Open a token account for mint. address defaults to a fresh random id;
        callers that derive the address (the vault) pass it explicitly.
        """
        validate_identity(owner, "owner")
        with self.transaction():
            if mint not in self._mints:
                raise AccountNotFound("Mint not found", {"mint": mint})
            address = address or secrets.token_hex(32)
            validate_identity(address, "address")
            if address in self._accounts:
                raise AlreadyExists("Token account already exists", {"address": address})
            self._accounts[address] = TokenAccount(address=address, mint=mint, owner=owner)
        return address

    def mint_to(self, mint: str, destination: str, amount: int, authority: str) -> None:
        validate_amount(amount)
        with self.transaction():
            record = self._mints.get(mint)
            if record is None:
                raise AccountNotFound("Mint not found", {"mint": mint})
            if record.mint_authority != authority:
                raise AuthorityMismatch("Not the mint authority", {"mint": mint})
            account = self._require_account(destination)
            if account.mint != mint:
                raise MintMismatch(
                    "Destination holds a different mint",
                    {"expected": mint, "got": account.mint},
                )
            if record.supply + amount > U64_MAX or account.amount + amount > U64_MAX:
                raise ArithmeticOverflow("Mint would overflow supply", {"mint": mint})
            record.supply  += amount
            account.amount += amount

    def transfer(
        self,
        source:      str,
        destination: str,
        amount:      int,
        authority:   str,
    ) -> None:
        """
        Move amount from source to destination.

        Raises:
            AccountNotFound     either account is missing
            AuthorityMismatch   authority is not the source account's owner
            MintMismatch        accounts hold different mints
            InsufficientFunds   source balance < amount
        """
        validate_amount(amount)
        with self.transaction():
            src = self._require_account(source)
            dst = self._require_account(destination)
            if src.owner != authority:
                raise AuthorityMismatch(
                    "Transfer not signed by the source owner",
                    {"source": source, "authority": authority},
                )
            if src.mint != dst.mint:
                raise MintMismatch(
                    "Source and destination hold different mints",
                    {"source_mint": src.mint, "destination_mint": dst.mint},
                )
            if src.amount < amount:
                raise InsufficientFunds(
                    "Insufficient funds",
                    {"available": src.amount, "requested": amount},
                )
            src.amount -= amount
            dst.amount += amount
        logger.debug(
            "Transfer applied",
            extra={"event": "token.transfer", "source": source[:16], "amount": amount},
        )

    # ── Transactions ──────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator["TokenLedger"]:
        """
        All-or-nothing scope. Nested scopes join the outermost one; only the
        outermost scope persists to disk on success.
        """
        with self._lock:
            snapshot = (copy.deepcopy(self._mints), copy.deepcopy(self._accounts))
            self._depth += 1
            try:
                yield self
                if self._depth == 1:
                    self._save()
            except BaseException:
                self._mints, self._accounts = snapshot
                raise
            finally:
                self._depth -= 1

    # ── Internals ─────────────────────────────────────────────

    def _require_account(self, address: str) -> TokenAccount:
        account = self._accounts.get(address)
        if account is None:
            raise AccountNotFound("Token account not found", {"address": address})
        return account

    def _save(self) -> None:
        if self.path is None:
            return
        atomic_write_json(self.path, {
            "mints":    {k: asdict(v) for k, v in self._mints.items()},
            "accounts": {k: asdict(v) for k, v in self._accounts.items()},
        })

    def _load(self) -> None:
        data = read_json(self.path)
        if data is None:
            return
        self._mints = {k: Mint(**v) for k, v in data.get("mints", {}).items()}
        self._accounts = {
            k: TokenAccount(**v) for k, v in data.get("accounts", {}).items()
        }
