"""
claimgate/cli/verify.py

claimgate verify-journal — event journal verification
=====================================================

Usage:
    claimgate verify-journal <journal>                  Human output (default)
    claimgate verify-journal <journal> --format json    Machine-readable JSON
    claimgate verify-journal <journal> --quiet          Exit code only
    claimgate verify-journal <journal> --no-color       Disable ANSI

Exit codes:
    0  Journal chain intact
    1  Journal chain violated
    2  Error  (file missing, malformed JSON)
"""

import json
import sys
from pathlib import Path

import click

from claimgate.core.exceptions import JournalError, JournalIntegrityError
from claimgate.store.journal import EventJournal


# ── ANSI color ────────────────────────────────────────────────────────────────

class _Color:
    """Auto-disables when not a TTY or --no-color is passed."""
    _on: bool = True

    @classmethod
    def configure(cls, enabled: bool) -> None:
        cls._on = enabled and sys.stdout.isatty()

    @classmethod
    def green(cls, s: str) -> str:
        return f"\033[32m{s}\033[0m" if cls._on else s

    @classmethod
    def red(cls, s: str) -> str:
        return f"\033[31m{s}\033[0m" if cls._on else s

    @classmethod
    def dim(cls, s: str) -> str:
        return f"\033[2m{s}\033[0m" if cls._on else s


def _row_ok(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<16}')}  {_Color.green('✅')}  {value}"

def _row_fail(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<16}')}  {_Color.red('❌')}  {value}"

def _row_info(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<16}')}     {_Color.dim(value)}"


@click.command(name="verify-journal")
@click.argument("journal", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
)
@click.option("--quiet", is_flag=True, default=False, help="Exit code only.")
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI color output.")
def verify_journal_command(journal: str, fmt: str, quiet: bool, no_color: bool) -> None:
    """Verify the hash chain of a ClaimEvent journal."""
    _Color.configure(not no_color)
    path = Path(journal)

    if not path.exists():
        if not quiet:
            click.echo(f"❌ Error: journal not found: {path}", err=True)
        sys.exit(2)

    violation = None
    try:
        loaded = EventJournal(path)
    except JournalIntegrityError as e:
        violation = e
        loaded = None
    except JournalError as e:
        if not quiet:
            click.echo(f"❌ Error: {e}", err=True)
        sys.exit(2)

    if quiet:
        sys.exit(0 if violation is None else 1)

    events = loaded.claim_events() if loaded else []
    total  = sum(e.amount for e in events)

    if fmt == "json":
        click.echo(json.dumps({
            "journal":       str(path),
            "valid":         violation is None,
            "violation":     str(violation) if violation else None,
            "claims":        len(events),
            "total_claimed": total,
            "head_hash":     loaded.head_hash() if loaded else None,
        }, indent=2))
    else:
        click.echo()
        click.echo(_row_info("Journal", str(path)))
        if violation is None:
            click.echo(_row_ok("Chain", f"intact — {len(loaded.entries):,} entries"))
            click.echo(_row_info("Claims", f"{len(events):,}  totalling {total:,}"))
            click.echo(_row_info("Head hash", loaded.head_hash()))
        else:
            click.echo(_row_fail("Chain", _Color.red(str(violation))))
        click.echo()

    sys.exit(0 if violation is None else 1)
