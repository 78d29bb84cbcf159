"""
claimgate/core/derivation.py

Deterministic program addresses.

An address derived here is
    SHA-256(seed_0 || ... || seed_n || bump || program_id || "ProgramDerivedAddress")
for the highest bump in 255..0 whose hash is NOT a valid compressed Ed25519
point. Because the address is off the curve, no private key can exist for
it: the only party that can act for it is the program that derived it, by
re-deriving it from the same seeds and bump.

The engine uses three derivations:
    ("state",)              → StateRecord address, also the Vault's authority
    ("vault",)              → Vault token account
    ("claim", claimant)     → ClaimRecord for one claimant
"""

import hashlib
import logging
from typing import Tuple, Union

from claimgate.core.exceptions import ConstraintViolation, ValidationError
from claimgate.core.models import validate_identity


logger = logging.getLogger(__name__)

MAX_SEEDS       = 16
MAX_SEED_LENGTH = 32
PDA_MARKER      = b"ProgramDerivedAddress"

Seed = Union[bytes, str]

# Ed25519 (edwards25519) field prime and curve constant d = -121665/121666
_P = 2 ** 255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


def is_on_curve(point: bytes) -> bool:
    """
    True if the 32 bytes decode to a point on edwards25519.

    Follows RFC 8032 §5.1.3 decoding: recover x² = (y² - 1) / (d·y² + 1) and
    check it is a quadratic residue mod p.
    """
    if len(point) != 32:
        return False
    y    = int.from_bytes(point, "little")
    sign = y >> 255
    y   &= (1 << 255) - 1
    if y >= _P:
        return False
    y2 = y * y % _P
    u  = (y2 - 1) % _P
    v  = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    if x2 == 0:
        return sign == 0
    return pow(x2, (_P - 1) // 2, _P) == 1


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, str):
        seed = seed.encode("utf-8")
    if not isinstance(seed, (bytes, bytearray)):
        raise ValidationError("Seeds must be bytes or str", {"seed": repr(seed)})
    if len(seed) > MAX_SEED_LENGTH:
        raise ValidationError(
            f"Seed longer than {MAX_SEED_LENGTH} bytes", {"length": len(seed)}
        )
    return bytes(seed)


class AddressDerivation:
    """
    Address derivation bound to one program id.

        derive(*seeds)                          → (address_hex, bump)
        create_address(*seeds, bump=b)          → address_hex  (raises if on curve)
        act_as_authority(address, *seeds, bump) → address_hex  (proof of authority)
    """

    def __init__(self, program_id: str) -> None:
        self.program_id = validate_identity(program_id, "program_id")
        self._program_bytes = bytes.fromhex(program_id)

    def create_address(self, *seeds: Seed, bump: int) -> str:
        if len(seeds) + 1 > MAX_SEEDS:
            raise ValidationError(
                f"At most {MAX_SEEDS - 1} seeds plus bump", {"seeds": len(seeds)}
            )
        if not 0 <= bump <= 255:
            raise ValidationError("bump must be a single byte", {"bump": bump})
        h = hashlib.sha256()
        for seed in seeds:
            h.update(_seed_bytes(seed))
        h.update(bytes([bump]))
        h.update(self._program_bytes)
        h.update(PDA_MARKER)
        digest = h.digest()
        if is_on_curve(digest):
            raise ConstraintViolation(
                "Derived address lies on the Ed25519 curve", {"bump": bump}
            )
        return digest.hex()

    def derive(self, *seeds: Seed) -> Tuple[str, int]:
        """Find the canonical (highest-bump) off-curve address for seeds."""
        for bump in range(255, -1, -1):
            try:
                address = self.create_address(*seeds, bump=bump)
            except ConstraintViolation:
                continue
            logger.debug(
                "Derived program address",
                extra={"event": "derivation.derive", "address": address[:16], "bump": bump},
            )
            return address, bump
        raise ConstraintViolation("No off-curve bump found for seeds")

    def act_as_authority(self, address: str, *seeds: Seed, bump: int) -> str:
        """
        Prove this program controls address by re-deriving it.

        Returns address, to be passed as the transfer authority.
        Raises ConstraintViolation if (seeds, bump) does not yield address.
        """
        derived = self.create_address(*seeds, bump=bump)
        if derived != address:
            raise ConstraintViolation(
                "Seeds and bump do not derive the claimed authority",
                {"expected": address, "derived": derived},
            )
        return derived

    def __repr__(self) -> str:
        return f"AddressDerivation(program_id={self.program_id[:16]}...)"
