"""
ClaimGate configuration: Strict and Trusting modes.

Strict Mode:   Production. Every claim signature is verified against the
               signer key stored at initialization.
Trusting Mode: Test environments only. Claim signatures are accepted
               without verification. A warning is raised whenever an
               engine is built in this mode.

Configuration comes from a YAML file, then environment variables:

    CLAIMGATE_PROGRAM_ID   64-hex program id (seeds every derived address)
    CLAIMGATE_DATA_DIR     directory for accounts.json, token_ledger.json,
                           events.jsonl
    CLAIMGATE_MODE         "strict" | "trusting"
    CLAIMGATE_JOURNAL      "1"/"true" to append ClaimEvents to events.jsonl
"""

import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

import yaml

from claimgate.core.exceptions import ValidationError
from claimgate.core.models import validate_identity


DEFAULT_DATA_DIR = ".claimgate"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class EngineMode(Enum):
    STRICT   = "strict"
    TRUSTING = "trusting"

    @property
    def verifies_signatures(self) -> bool:
        return self is EngineMode.STRICT


def _parse_mode(value) -> EngineMode:
    if isinstance(value, EngineMode):
        return value
    try:
        return EngineMode(str(value).lower())
    except ValueError:
        raise ValidationError(
            "Unknown engine mode", {"mode": value}
        ) from None


@dataclass(frozen=True)
class EngineConfig:
    program_id:      str
    data_dir:        Optional[Path] = None
    mode:            EngineMode = EngineMode.STRICT
    journal_enabled: bool = True

    def __post_init__(self):
        validate_identity(self.program_id, "program_id")

    # ── Paths ─────────────────────────────────────────────────

    @property
    def store_path(self) -> Optional[Path]:
        return self.data_dir / "accounts.json" if self.data_dir else None

    @property
    def token_ledger_path(self) -> Optional[Path]:
        return self.data_dir / "token_ledger.json" if self.data_dir else None

    @property
    def journal_path(self) -> Optional[Path]:
        if not self.data_dir or not self.journal_enabled:
            return None
        return self.data_dir / "events.jsonl"

    # ── Loading ───────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Mapping) -> "EngineConfig":
        if "program_id" not in data:
            raise ValidationError("Configuration is missing program_id")
        data_dir = data.get("data_dir", DEFAULT_DATA_DIR)
        return cls(
            program_id=      str(data["program_id"]).lower(),
            data_dir=        Path(data_dir) if data_dir else None,
            mode=            _parse_mode(data.get("mode", EngineMode.STRICT.value)),
            journal_enabled= bool(data.get("journal", True)),
        )

    @classmethod
    def from_yaml(cls, config_file: Path) -> "EngineConfig":
        """Load configuration from YAML, then apply environment overrides."""
        with open(config_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValidationError(
                "Configuration file must contain a mapping", {"file": str(config_file)}
            )
        return cls.from_dict(data).with_env()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        environ = os.environ if environ is None else environ
        if "CLAIMGATE_PROGRAM_ID" not in environ:
            raise ValidationError("CLAIMGATE_PROGRAM_ID is not set")
        return cls.from_dict({"program_id": environ["CLAIMGATE_PROGRAM_ID"]}).with_env(environ)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Return a copy with CLAIMGATE_* environment variables applied."""
        environ = os.environ if environ is None else environ
        overrides = {}
        if "CLAIMGATE_PROGRAM_ID" in environ:
            overrides["program_id"] = environ["CLAIMGATE_PROGRAM_ID"].lower()
        if "CLAIMGATE_DATA_DIR" in environ:
            overrides["data_dir"] = Path(environ["CLAIMGATE_DATA_DIR"])
        if "CLAIMGATE_MODE" in environ:
            overrides["mode"] = _parse_mode(environ["CLAIMGATE_MODE"])
        if "CLAIMGATE_JOURNAL" in environ:
            overrides["journal_enabled"] = (
                environ["CLAIMGATE_JOURNAL"].strip().lower() in _TRUE_VALUES
            )
        return replace(self, **overrides) if overrides else self
