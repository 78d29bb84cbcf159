"""
claimgate/cli/__init__.py

ClaimGate CLI — root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    claimgate = "claimgate.cli:cli"
"""

import logging

import click

from claimgate.cli.deploy import (
    claim_command,
    deploy_command,
    status_command,
    withdraw_command,
)
from claimgate.cli.keys import keygen_command, sign_command
from claimgate.cli.verify import verify_journal_command


@click.group()
@click.version_option(package_name="claimgate")
@click.option("-v", "--verbose", count=True, help="Log engine activity (-v info, -vv debug).")
def cli(verbose: int) -> None:
    """
    ClaimGate — signature-gated one-time token distribution.

    \b
    Quick start:
      claimgate keygen owner.pem
      claimgate keygen signer.pem
      claimgate deploy --config claimgate.yaml --owner-key owner.pem \\
                       --signer-key signer.pem --fund 1000000000
      claimgate sign --key signer.pem <claimant> 100000000
      claimgate claim --config claimgate.yaml --claimant-key user.pem \\
                      --amount 100000000 --signature <hex>
      claimgate verify-journal .claimgate/events.jsonl
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


cli.add_command(keygen_command)
cli.add_command(sign_command)
cli.add_command(deploy_command)
cli.add_command(status_command)
cli.add_command(claim_command)
cli.add_command(withdraw_command)
cli.add_command(verify_journal_command)
