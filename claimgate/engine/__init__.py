"""
ClaimGate Distribution Engine

Operations:
- initialize     create the deployment's StateRecord
- create_vault   bind the vault token account to the state's derived address
- claim          signature-gated, one-time redemption
- withdraw       owner-only recovery of unclaimed funds

Critical Invariants:
- A claimant is paid at most once
- Only the offline signer's attestation authorizes a claim
- Only the owner can withdraw
- total_claimed equals the sum of all claim transfers
"""

from claimgate.engine.engine import DistributionEngine, STATE_SEED, VAULT_SEED

__all__ = ["DistributionEngine", "STATE_SEED", "VAULT_SEED"]
