"""
ClaimGate Store - persistent State Record, Claim Ledger and event journal.
"""

from claimgate.store.claims import ClaimLedger
from claimgate.store.journal import EventJournal, JournalEntry
from claimgate.store.store import StateStore

__all__ = ["ClaimLedger", "EventJournal", "JournalEntry", "StateStore"]
