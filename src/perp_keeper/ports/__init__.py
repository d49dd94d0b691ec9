"""
Ports: Abstract interfaces for external dependencies.

This follows the Ports & Adapters (Hexagonal) architecture pattern.
Business logic depends only on these interfaces, not on concrete implementations.
"""

from perp_keeper.ports.chain import ChainRpcPort, TransactionSenderPort
from perp_keeper.ports.event_bus import EventBusPort
from perp_keeper.ports.store import BatchStorePort

__all__ = ["ChainRpcPort", "TransactionSenderPort", "BatchStorePort", "EventBusPort"]
