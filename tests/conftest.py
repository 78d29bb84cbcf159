"""
Shared fixtures: a deployment with an owner, an offline signer, a mint,
and an engine whose vault holds 1000 tokens.
"""

from dataclasses import dataclass
from typing import Tuple

import pytest

from claimgate import (
    AddressDerivation,
    DistributionEngine,
    Ed25519KeyManager,
    EngineMode,
    StateStore,
    TokenLedger,
    sign_claim,
)


PROGRAM_ID = "a1" * 32


@dataclass
class Deployment:
    engine: DistributionEngine
    ledger: TokenLedger
    mint:   str
    owner:  Ed25519KeyManager
    signer: Ed25519KeyManager

    @property
    def owner_id(self) -> str:
        return self.owner.public_key_hex

    def new_claimant(self) -> Tuple[str, str]:
        """A fresh claimant identity and its empty token account."""
        claimant = Ed25519KeyManager.generate().public_key_hex
        account  = self.ledger.create_account(mint=self.mint, owner=claimant)
        return claimant, account

    def owner_account(self) -> str:
        account = self.ledger.find_account(self.mint, self.owner_id)
        if account is not None:
            return account.address
        return self.ledger.create_account(mint=self.mint, owner=self.owner_id)

    def signature(self, claimant: str, amount: int) -> bytes:
        return sign_claim(self.signer, claimant, amount)

    def claim(self, claimant: str, account: str, amount: int):
        return self.engine.claim(
            claimant, amount, self.signature(claimant, amount), account
        )


def build_deployment(
    mode:    EngineMode = EngineMode.STRICT,
    funding: int = 1000,
) -> Deployment:
    owner  = Ed25519KeyManager.generate()
    signer = Ed25519KeyManager.generate()
    ledger = TokenLedger()
    mint   = ledger.create_mint(mint_authority=owner.public_key_hex)
    engine = DistributionEngine(
        store=        StateStore(PROGRAM_ID),
        token_ledger= ledger,
        derivation=   AddressDerivation(PROGRAM_ID),
        mode=         mode,
    )
    engine.initialize(owner.public_key_hex, mint, signer.public_key_hex)
    vault = engine.create_vault(owner.public_key_hex, mint)
    if funding:
        ledger.mint_to(mint, vault, funding, authority=owner.public_key_hex)
    return Deployment(engine=engine, ledger=ledger, mint=mint, owner=owner, signer=signer)


@pytest.fixture
def deployment() -> Deployment:
    return build_deployment()


@pytest.fixture
def bare_engine():
    """An engine over an empty store, plus its ledger and a mint."""
    ledger = TokenLedger()
    owner  = Ed25519KeyManager.generate()
    mint   = ledger.create_mint(mint_authority=owner.public_key_hex)
    engine = DistributionEngine(
        store=        StateStore(PROGRAM_ID),
        token_ledger= ledger,
        derivation=   AddressDerivation(PROGRAM_ID),
    )
    return engine, ledger, mint, owner


@pytest.fixture
def make_deployment():
    """Factory for deployments with a non-default mode or funding."""
    return build_deployment
