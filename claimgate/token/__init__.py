"""
ClaimGate Token Ledger - reference implementation of the external token program.
"""

from claimgate.token.ledger import Mint, TokenAccount, TokenLedger

__all__ = ["Mint", "TokenAccount", "TokenLedger"]
