"""
Atomic file helpers shared by the state store and the token ledger.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional

from claimgate.core.exceptions import StoreError


def atomic_write_json(path: Path, obj: Any) -> None:
    """
    Replace path with the JSON encoding of obj.

    Writes a sibling temp file, fsyncs it, then os.replace()s it over the
    target, so readers see either the old or the new content, never a mix.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(obj, f, sort_keys=True, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except OSError as e:
        if temp_path.exists():
            temp_path.unlink()
        raise StoreError(f"Failed to write {path}: {e}") from e


def read_json(path: Path) -> Optional[Any]:
    """Load JSON from path, or None if the file does not exist."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise StoreError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise StoreError(f"Failed to read {path}: {e}") from e
