"""
Keeper services: readiness, funding, simulation, broadcast and ledger upkeep.
"""

from perp_keeper.services.chain_reader import ChainStateReader, PoolDiagnostics
from perp_keeper.services.coordinator import BatchCoordinator
from perp_keeper.services.funding import FundingReconciler, required_quote_amount
from perp_keeper.services.reveals import RevealRecorder
from perp_keeper.services.simulator import TransactionSimulator
from perp_keeper.services.sweep import LedgerSweeper, SweepResult
from perp_keeper.services.triggers import IntervalTrigger, RevealTrigger

__all__ = [
    "BatchCoordinator",
    "ChainStateReader",
    "FundingReconciler",
    "IntervalTrigger",
    "LedgerSweeper",
    "PoolDiagnostics",
    "RevealRecorder",
    "RevealTrigger",
    "SweepResult",
    "TransactionSimulator",
    "required_quote_amount",
]
