"""
ClaimGate: Basic Usage Example

Demonstrates:
- Deploying a distribution (state + vault) over an in-memory token ledger
- The offline signer attesting a claim
- A claimant redeeming once, and the second attempt being refused
- The owner withdrawing what is left
"""

from claimgate import (
    AddressDerivation,
    AlreadyClaimed,
    DistributionEngine,
    Ed25519KeyManager,
    StateStore,
    TokenLedger,
    sign_claim,
)


PROGRAM_ID = "5a" * 32


def main():
    print("=" * 60)
    print("ClaimGate: Basic Usage Example")
    print("=" * 60)
    print()

    owner  = Ed25519KeyManager.generate()
    signer = Ed25519KeyManager.generate()
    user   = Ed25519KeyManager.generate()

    # 1️⃣ Deploy
    print("1️⃣ Deploying...")
    ledger = TokenLedger()
    mint   = ledger.create_mint(mint_authority=owner.public_key_hex)
    engine = DistributionEngine(
        store=        StateStore(PROGRAM_ID),
        token_ledger= ledger,
        derivation=   AddressDerivation(PROGRAM_ID),
    )
    engine.initialize(owner.public_key_hex, mint, signer.public_key_hex)
    vault = engine.create_vault(owner.public_key_hex, mint)
    ledger.mint_to(mint, vault, 1_000_000_000, authority=owner.public_key_hex)
    print(f"✅ Vault {vault[:16]}... holds {engine.vault_balance():,}")
    print()

    # 2️⃣ Offline signer attests (user, 100 tokens)
    amount    = 100_000_000
    signature = sign_claim(signer, user.public_key_hex, amount)
    recipient = ledger.create_account(mint=mint, owner=user.public_key_hex)

    # 3️⃣ Claim, twice
    print("2️⃣ Claiming...")
    event = engine.claim(user.public_key_hex, amount, signature, recipient)
    print(f"✅ Paid {event.amount:,}; total claimed {event.total_claimed:,}")
    try:
        engine.claim(user.public_key_hex, amount, signature, recipient)
    except AlreadyClaimed as e:
        print(f"✅ Second claim refused: {e.message}")
    print()

    # 4️⃣ Withdraw the rest
    print("3️⃣ Withdrawing...")
    treasury = ledger.create_account(mint=mint, owner=owner.public_key_hex)
    engine.withdraw(owner.public_key_hex, engine.vault_balance(), treasury)
    print(f"✅ Vault balance {engine.vault_balance():,}, treasury {ledger.balance(treasury):,}")


if __name__ == "__main__":
    main()
