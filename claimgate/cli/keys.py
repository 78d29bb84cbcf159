"""
claimgate keygen / claimgate sign

Key handling for operators and for the offline signer.

    claimgate keygen signer.pem             new Ed25519 key, prints public key hex
    claimgate sign --key signer.pem C 100   signature (hex) over (C, 100)
"""

from pathlib import Path

import click

from claimgate.core.crypto import Ed25519KeyManager, sign_claim
from claimgate.core.exceptions import ClaimGateError


@click.command(name="keygen")
@click.argument("out", type=click.Path(dir_okay=False))
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing key file.")
def keygen_command(out: str, force: bool) -> None:
    """Generate an Ed25519 key and write it to OUT as PEM."""
    path = Path(out)
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")
    key = Ed25519KeyManager.generate()
    key.save(path)
    click.echo(key.public_key_hex)


@click.command(name="sign")
@click.option(
    "--key", "key_path",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Offline signer's PEM private key.",
)
@click.argument("claimant")
@click.argument("amount", type=int)
def sign_command(key_path: str, claimant: str, amount: int) -> None:
    """Sign the claim message for CLAIMANT and AMOUNT; prints hex."""
    try:
        key = Ed25519KeyManager.from_file(Path(key_path))
        signature = sign_claim(key, claimant.lower(), amount)
    except (ValueError, ClaimGateError) as e:
        raise click.ClickException(str(e))
    click.echo(signature.hex())
