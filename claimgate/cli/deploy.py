"""
Operator commands: deploy, status, claim, withdraw.

All commands read an EngineConfig YAML file (see claimgate.config) and work
against the persistent store, token ledger and journal under its data_dir.

Exit codes:
    0  success
    1  operation rejected (Unauthorized, AlreadyClaimed, ...)
    2  usage or configuration error
"""

import sys
from pathlib import Path
from typing import Optional

import click

from claimgate.config import EngineConfig
from claimgate.core.crypto import Ed25519KeyManager, signature_from_hex
from claimgate.core.exceptions import AlreadyClaimed, ClaimGateError
from claimgate.engine import DistributionEngine


_CONFIG_OPTION = click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Engine configuration YAML.",
)


def _open_engine(config_path: str) -> DistributionEngine:
    try:
        return DistributionEngine.from_config(EngineConfig.from_yaml(Path(config_path)))
    except ClaimGateError as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(2)


def _load_key(path: str) -> Ed25519KeyManager:
    try:
        return Ed25519KeyManager.from_file(Path(path))
    except ValueError as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(2)


def _rejected(e: ClaimGateError) -> None:
    code = f" [{e.code}]" if e.code is not None else ""
    click.echo(f"❌ {type(e).__name__}{code}: {e}", err=True)
    sys.exit(1)


def _account_for(engine: DistributionEngine, owner: str) -> str:
    """
    Find or open a token account of the configured mint for owner.

    A newly opened account is persisted on its own, outside the claim or
    withdrawal that follows, and stays open if that operation is rejected.
    """
    mint = engine.get_state().token_identifier
    account = engine.token_ledger.find_account(mint, owner)
    if account is not None:
        return account.address
    return engine.token_ledger.create_account(mint=mint, owner=owner)


def _echo_state(engine: DistributionEngine) -> None:
    state = engine.get_state()
    click.echo(f"  State account   {engine.state_address}")
    click.echo(f"  Owner           {state.owner}")
    click.echo(f"  Token           {state.token_identifier}")
    click.echo(f"  Signer          {state.signer_key}")
    click.echo(f"  Vault           {state.vault_reference or '—'}")
    click.echo(f"  Total claimed   {state.total_claimed:,}")
    if state.vault_reference:
        click.echo(f"  Vault balance   {engine.vault_balance():,}")


# ── deploy ────────────────────────────────────────────────────────────────────

@click.command(name="deploy")
@_CONFIG_OPTION
@click.option(
    "--owner-key", type=click.Path(exists=True, dir_okay=False), required=True,
    help="Owner's PEM private key. Its public key becomes the state owner.",
)
@click.option("--token", default=None, help="Existing mint id. Omit to create a new mint.")
@click.option("--signer", default=None, help="Offline signer public key (hex).")
@click.option(
    "--signer-key", type=click.Path(exists=True, dir_okay=False), default=None,
    help="Offline signer PEM key; only its public key is used.",
)
@click.option("--fund", type=int, default=None, help="Mint this amount into the vault.")
def deploy_command(
    config_path: str,
    owner_key:   str,
    token:       Optional[str],
    signer:      Optional[str],
    signer_key:  Optional[str],
    fund:        Optional[int],
) -> None:
    """Initialize the distribution and create its vault, unless already deployed."""
    engine = _open_engine(config_path)
    owner  = _load_key(owner_key).public_key_hex

    if engine.is_initialized():
        click.echo("State account exists, skipping initialization.")
        state = engine.get_state()
        if state.vault_reference is not None:
            _echo_state(engine)
            return
        # An earlier deploy stopped between initialize and create_vault.
        token = state.token_identifier
    else:
        if signer_key:
            signer = _load_key(signer_key).public_key_hex
        if not signer:
            click.echo("❌ Error: --signer or --signer-key is required", err=True)
            sys.exit(2)
        try:
            if token is None:
                token = engine.token_ledger.create_mint(mint_authority=owner)
                click.echo(f"Created mint {token}")
            token = token.lower()
            engine.initialize(owner, token, signer.lower())
        except ClaimGateError as e:
            _rejected(e)

    try:
        vault = engine.create_vault(owner, token)
        click.echo(f"Created vault {vault}")
        if fund:
            engine.token_ledger.mint_to(token, vault, fund, authority=owner)
            click.echo(f"Funded vault with {fund:,}")
    except ClaimGateError as e:
        _rejected(e)

    click.echo("✅ Deployed")
    _echo_state(engine)


# ── status ────────────────────────────────────────────────────────────────────

@click.command(name="status")
@_CONFIG_OPTION
def status_command(config_path: str) -> None:
    """Show the State Record and vault balance."""
    engine = _open_engine(config_path)
    if not engine.is_initialized():
        click.echo("Not initialized.")
        sys.exit(1)
    _echo_state(engine)
    if engine.journal is not None:
        click.echo(f"  Journal events  {len(engine.journal.entries):,}")
        click.echo(f"  Journal head    {engine.journal.head_hash()}")


# ── claim ─────────────────────────────────────────────────────────────────────

@click.command(name="claim")
@_CONFIG_OPTION
@click.option(
    "--claimant-key", type=click.Path(exists=True, dir_okay=False), required=True,
    help="Claimant's PEM private key.",
)
@click.option("--amount", type=int, required=True)
@click.option("--signature", required=True, help="Offline signer's signature (hex).")
@click.option("--recipient", default=None, help="Receiving token account. Default: claimant's.")
def claim_command(
    config_path:  str,
    claimant_key: str,
    amount:       int,
    signature:    str,
    recipient:    Optional[str],
) -> None:
    """Redeem an attested amount, once."""
    engine   = _open_engine(config_path)
    claimant = _load_key(claimant_key).public_key_hex
    try:
        raw_sig = signature_from_hex(signature)
    except ValueError as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(2)
    try:
        if engine.is_claimed(claimant):
            raise AlreadyClaimed("Claimant has already claimed", {"claimant": claimant})
        recipient = recipient.lower() if recipient else _account_for(engine, claimant)
        event = engine.claim(claimant, amount, raw_sig, recipient)
    except ClaimGateError as e:
        _rejected(e)
    click.echo(f"✅ Claimed {event.amount:,} → {recipient}")
    click.echo(f"  Total claimed   {event.total_claimed:,}")


# ── withdraw ──────────────────────────────────────────────────────────────────

@click.command(name="withdraw")
@_CONFIG_OPTION
@click.option(
    "--owner-key", type=click.Path(exists=True, dir_okay=False), required=True,
    help="Owner's PEM private key.",
)
@click.option("--amount", type=int, required=True)
@click.option("--destination", default=None, help="Receiving token account. Default: owner's.")
def withdraw_command(
    config_path: str,
    owner_key:   str,
    amount:      int,
    destination: Optional[str],
) -> None:
    """Withdraw unclaimed funds from the vault (owner only)."""
    engine = _open_engine(config_path)
    owner  = _load_key(owner_key).public_key_hex
    try:
        destination = destination.lower() if destination else _account_for(engine, owner)
        engine.withdraw(owner, amount, destination)
    except ClaimGateError as e:
        _rejected(e)
    click.echo(f"✅ Withdrew {amount:,} → {destination}")
    click.echo(f"  Vault balance   {engine.vault_balance():,}")
