"""
tests/test_engine.py

Distribution engine behavior.

  LIFECYCLE
    initialize creates the state once; create_vault binds once, owner only
  CLAIM
    valid signature pays exactly once
    wrong signer / wrong amount / wrong claimant → InvalidSignature, no change
    second claim → AlreadyClaimed, no transfer
    failed transfer → nothing committed, claimant can retry
    counter overflow → ArithmeticOverflow, nothing committed
  WITHDRAW
    owner only; insufficient funds propagated from the token ledger
  CONSERVATION
    total_claimed == sum of claims == vault decrease minus withdrawals

Run:
    pytest tests/test_engine.py -v
"""

import pytest

from claimgate import (
    AlreadyClaimed,
    AlreadyExists,
    ArithmeticOverflow,
    ClaimEvent,
    Ed25519KeyManager,
    EngineMode,
    InvalidSignature,
    StateRecord,
    Unauthorized,
    sign_claim,
)
from claimgate.core.exceptions import (
    AccountNotFound,
    AuthorityMismatch,
    ConstraintViolation,
    InsufficientFunds,
    NotInitialized,
    ValidationError,
)
from claimgate.core.models import U64_MAX


# ─────────────────────────────────────────────────────────────
# Lifecycle
# ─────────────────────────────────────────────────────────────

class TestInitialize:

    def test_initialize_populates_state(self, bare_engine):
        engine, _, mint, owner = bare_engine
        signer = Ed25519KeyManager.generate()

        state = engine.initialize(owner.public_key_hex, mint, signer.public_key_hex)

        stored = engine.get_state()
        assert stored == state
        assert stored.owner == owner.public_key_hex
        assert stored.token_identifier == mint
        assert stored.signer_key == signer.public_key_hex
        assert stored.total_claimed == 0
        assert stored.vault_reference is None
        assert stored.derivation_bump == engine.state_bump

    def test_second_initialize_fails(self, bare_engine):
        engine, _, mint, owner = bare_engine
        signer = Ed25519KeyManager.generate()
        engine.initialize(owner.public_key_hex, mint, signer.public_key_hex)

        other = Ed25519KeyManager.generate().public_key_hex
        with pytest.raises(AlreadyExists):
            engine.initialize(other, mint, other)

        assert engine.get_state().owner == owner.public_key_hex

    def test_initialize_requires_existing_mint(self, bare_engine):
        engine, _, _, owner = bare_engine
        with pytest.raises(AccountNotFound):
            engine.initialize(owner.public_key_hex, "cd" * 32, owner.public_key_hex)
        assert not engine.is_initialized()

    def test_initialize_rejects_malformed_signer_key(self, bare_engine):
        engine, _, mint, owner = bare_engine
        with pytest.raises(ValidationError):
            engine.initialize(owner.public_key_hex, mint, "not-a-key")

    def test_operations_before_initialize(self, bare_engine):
        engine, _, mint, owner = bare_engine
        with pytest.raises(NotInitialized):
            engine.get_state()
        with pytest.raises(NotInitialized):
            engine.create_vault(owner.public_key_hex, mint)


class TestCreateVault:

    def test_vault_authority_is_state_address(self, bare_engine):
        engine, ledger, mint, owner = bare_engine
        engine.initialize(owner.public_key_hex, mint, owner.public_key_hex)

        vault = engine.create_vault(owner.public_key_hex, mint)

        account = ledger.get_account(vault)
        assert vault == engine.vault_address
        assert account.owner == engine.state_address
        assert account.mint == mint
        assert engine.get_state().vault_reference == vault

    def test_non_owner_cannot_create_vault(self, bare_engine):
        engine, ledger, mint, owner = bare_engine
        engine.initialize(owner.public_key_hex, mint, owner.public_key_hex)
        stranger = Ed25519KeyManager.generate().public_key_hex

        with pytest.raises(Unauthorized):
            engine.create_vault(stranger, mint)

        assert engine.get_state().vault_reference is None
        assert not ledger.has_account(engine.vault_address)

    def test_vault_binds_once(self, deployment):
        before = deployment.engine.get_state().vault_reference
        with pytest.raises(AlreadyExists):
            deployment.engine.create_vault(deployment.owner_id, deployment.mint)
        assert deployment.engine.get_state().vault_reference == before

    def test_token_must_match_state(self, bare_engine):
        engine, ledger, mint, owner = bare_engine
        engine.initialize(owner.public_key_hex, mint, owner.public_key_hex)
        other_mint = ledger.create_mint(mint_authority=owner.public_key_hex)

        with pytest.raises(ConstraintViolation):
            engine.create_vault(owner.public_key_hex, other_mint)


# ─────────────────────────────────────────────────────────────
# Claim
# ─────────────────────────────────────────────────────────────

class TestClaim:

    def test_valid_claim_pays_once(self, deployment):
        claimant, account = deployment.new_claimant()

        event = deployment.claim(claimant, account, 100)

        assert event.claimant == claimant
        assert event.amount == 100
        assert event.total_claimed == 100
        assert deployment.ledger.balance(account) == 100
        assert deployment.engine.vault_balance() == 900
        assert deployment.engine.is_claimed(claimant)

    def test_second_claim_fails_without_transfer(self, deployment):
        claimant, account = deployment.new_claimant()
        deployment.claim(claimant, account, 100)

        with pytest.raises(AlreadyClaimed) as exc:
            deployment.claim(claimant, account, 100)

        assert exc.value.code == 6002
        assert deployment.ledger.balance(account) == 100
        assert deployment.engine.vault_balance() == 900
        assert deployment.engine.get_state().total_claimed == 100

    def test_second_claim_with_different_amount_also_fails(self, deployment):
        claimant, account = deployment.new_claimant()
        deployment.claim(claimant, account, 100)
        with pytest.raises(AlreadyClaimed):
            deployment.claim(claimant, account, 5)

    def test_signature_from_other_key_rejected(self, deployment):
        claimant, account = deployment.new_claimant()
        forger = Ed25519KeyManager.generate()
        signature = sign_claim(forger, claimant, 100)

        with pytest.raises(InvalidSignature) as exc:
            deployment.engine.claim(claimant, 100, signature, account)

        assert exc.value.code == 6001
        assert not deployment.engine.is_claimed(claimant)
        assert deployment.engine.claims.get(claimant) is None
        assert deployment.engine.vault_balance() == 1000

    def test_signature_over_other_amount_rejected(self, deployment):
        claimant, account = deployment.new_claimant()
        signature = deployment.signature(claimant, 10)

        with pytest.raises(InvalidSignature):
            deployment.engine.claim(claimant, 500, signature, account)

        assert deployment.ledger.balance(account) == 0

    def test_signature_for_other_claimant_rejected(self, deployment):
        alice, _ = deployment.new_claimant()
        mallory, mallory_account = deployment.new_claimant()
        signature = deployment.signature(alice, 100)

        with pytest.raises(InvalidSignature):
            deployment.engine.claim(mallory, 100, signature, mallory_account)

        assert not deployment.engine.is_claimed(alice)
        assert not deployment.engine.is_claimed(mallory)

    def test_malformed_signature_rejected(self, deployment):
        claimant, account = deployment.new_claimant()
        with pytest.raises(InvalidSignature):
            deployment.engine.claim(claimant, 100, b"\x00" * 10, account)

    def test_recipient_must_belong_to_claimant(self, deployment):
        claimant, _ = deployment.new_claimant()
        _, other_account = deployment.new_claimant()

        with pytest.raises(ConstraintViolation):
            deployment.claim(claimant, other_account, 100)

        assert not deployment.engine.is_claimed(claimant)

    def test_recipient_must_hold_configured_token(self, deployment):
        claimant = Ed25519KeyManager.generate().public_key_hex
        other_mint = deployment.ledger.create_mint(mint_authority=deployment.owner_id)
        account = deployment.ledger.create_account(mint=other_mint, owner=claimant)

        with pytest.raises(ConstraintViolation):
            deployment.claim(claimant, account, 100)

    def test_failed_transfer_rolls_back_claim_flag(self, deployment):
        claimant, account = deployment.new_claimant()

        with pytest.raises(InsufficientFunds):
            deployment.claim(claimant, account, 5000)

        assert not deployment.engine.is_claimed(claimant)
        assert deployment.engine.claims.get(claimant) is None
        assert deployment.engine.get_state().total_claimed == 0
        assert deployment.engine.vault_balance() == 1000

        deployment.claim(claimant, account, 1000)
        assert deployment.ledger.balance(account) == 1000

    def test_counter_overflow_rolls_back(self, deployment):
        engine = deployment.engine
        state = engine.get_state()
        state.total_claimed = U64_MAX - 50
        engine.store.put(engine.state_address, state.to_bytes())
        claimant, account = deployment.new_claimant()

        with pytest.raises(ArithmeticOverflow):
            deployment.claim(claimant, account, 100)

        assert engine.get_state().total_claimed == U64_MAX - 50
        assert engine.vault_balance() == 1000
        assert deployment.ledger.balance(account) == 0
        assert not engine.is_claimed(claimant)

    @pytest.mark.parametrize("amount", [0, -1, U64_MAX + 1, True, "100"])
    def test_invalid_amounts_rejected(self, deployment, amount):
        claimant, account = deployment.new_claimant()
        with pytest.raises(ValidationError):
            deployment.engine.claim(claimant, amount, b"\x00" * 64, account)

    def test_claim_before_vault_fails(self, bare_engine):
        engine, ledger, mint, owner = bare_engine
        signer = Ed25519KeyManager.generate()
        engine.initialize(owner.public_key_hex, mint, signer.public_key_hex)
        claimant = Ed25519KeyManager.generate().public_key_hex
        account = ledger.create_account(mint=mint, owner=claimant)

        with pytest.raises(NotInitialized):
            engine.claim(claimant, 1, sign_claim(signer, claimant, 1), account)
        assert not engine.is_claimed(claimant)

    def test_listeners_receive_committed_events(self, deployment):
        received = []
        deployment.engine.subscribe(received.append)
        claimant, account = deployment.new_claimant()

        deployment.claim(claimant, account, 40)
        with pytest.raises(AlreadyClaimed):
            deployment.claim(claimant, account, 40)

        assert len(received) == 1
        assert isinstance(received[0], ClaimEvent)
        assert received[0].claimant == claimant
        assert received[0].amount == 40

    def test_failing_listener_does_not_fail_committed_claim(self, deployment):
        def indexer_down(event):
            raise RuntimeError("indexer down")

        received = []
        deployment.engine.subscribe(indexer_down)
        deployment.engine.subscribe(received.append)
        claimant, account = deployment.new_claimant()

        event = deployment.claim(claimant, account, 100)

        assert event.amount == 100
        assert deployment.ledger.balance(account) == 100
        assert deployment.engine.is_claimed(claimant)
        assert [e.claimant for e in received] == [claimant]


class TestTrustingMode:

    def test_trusting_mode_warns(self, make_deployment):
        with pytest.warns(UserWarning, match="TRUSTING"):
            make_deployment(mode=EngineMode.TRUSTING)

    def test_trusting_mode_skips_verification_but_keeps_idempotency(self, make_deployment):
        with pytest.warns(UserWarning):
            deployment = make_deployment(mode=EngineMode.TRUSTING)
        claimant, account = deployment.new_claimant()

        deployment.engine.claim(claimant, 100, b"\x00" * 64, account)
        with pytest.raises(AlreadyClaimed):
            deployment.engine.claim(claimant, 100, b"\x00" * 64, account)

        assert deployment.ledger.balance(account) == 100


# ─────────────────────────────────────────────────────────────
# Withdraw
# ─────────────────────────────────────────────────────────────

class TestWithdraw:

    def test_owner_withdraws(self, deployment):
        destination = deployment.owner_account()

        deployment.engine.withdraw(deployment.owner_id, 300, destination)

        assert deployment.engine.vault_balance() == 700
        assert deployment.ledger.balance(destination) == 300

    def test_non_owner_rejected(self, deployment):
        stranger, stranger_account = deployment.new_claimant()

        with pytest.raises(Unauthorized) as exc:
            deployment.engine.withdraw(stranger, 1, stranger_account)

        assert exc.value.code == 6000
        assert deployment.engine.vault_balance() == 1000

    def test_insufficient_funds_propagates(self, deployment):
        destination = deployment.owner_account()
        with pytest.raises(InsufficientFunds):
            deployment.engine.withdraw(deployment.owner_id, 1001, destination)
        assert deployment.engine.vault_balance() == 1000

    def test_destination_must_hold_configured_token(self, deployment):
        other_mint = deployment.ledger.create_mint(mint_authority=deployment.owner_id)
        destination = deployment.ledger.create_account(
            mint=other_mint, owner=deployment.owner_id
        )
        with pytest.raises(ConstraintViolation):
            deployment.engine.withdraw(deployment.owner_id, 1, destination)

    def test_withdraw_is_repeatable(self, deployment):
        destination = deployment.owner_account()
        for _ in range(4):
            deployment.engine.withdraw(deployment.owner_id, 250, destination)
        assert deployment.engine.vault_balance() == 0


class TestVaultCustody:

    def test_owner_cannot_move_vault_funds_directly(self, deployment):
        """Only the state's derived address can authorize vault transfers."""
        destination = deployment.owner_account()
        with pytest.raises(AuthorityMismatch):
            deployment.ledger.transfer(
                deployment.engine.vault_address, destination, 1, deployment.owner_id
            )
        assert deployment.engine.vault_balance() == 1000


# ─────────────────────────────────────────────────────────────
# End-to-end
# ─────────────────────────────────────────────────────────────

class TestScenario:

    def test_claim_then_drain(self, deployment):
        engine = deployment.engine
        c1, c1_account = deployment.new_claimant()

        deployment.claim(c1, c1_account, 100)
        assert engine.get_state().total_claimed == 100
        assert engine.vault_balance() == 900
        assert engine.is_claimed(c1)

        with pytest.raises(AlreadyClaimed):
            deployment.claim(c1, c1_account, 100)
        assert engine.get_state().total_claimed == 100
        assert engine.vault_balance() == 900

        engine.withdraw(deployment.owner_id, 900, deployment.owner_account())
        assert engine.vault_balance() == 0

        stranger, stranger_account = deployment.new_claimant()
        with pytest.raises(Unauthorized):
            engine.withdraw(stranger, 1, stranger_account)

    def test_conservation(self, make_deployment):
        deployment = make_deployment(funding=10_000)
        engine = deployment.engine
        amounts = [1, 250, 999, 42, 3000]
        withdrawn = 0

        for i, amount in enumerate(amounts):
            claimant, account = deployment.new_claimant()
            deployment.claim(claimant, account, amount)
            assert deployment.ledger.balance(account) == amount
            if i % 2:
                engine.withdraw(deployment.owner_id, 100, deployment.owner_account())
                withdrawn += 100

        assert engine.get_state().total_claimed == sum(amounts)
        assert engine.vault_balance() == 10_000 - sum(amounts) - withdrawn

    def test_state_record_round_trips_through_store(self, deployment):
        claimant, account = deployment.new_claimant()
        deployment.claim(claimant, account, 7)

        raw = deployment.engine.store.get(deployment.engine.state_address)
        assert len(raw) == StateRecord.SIZE
        assert StateRecord.from_bytes(raw).total_claimed == 7
