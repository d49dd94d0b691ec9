"""Chain adapters: JSON-RPC client and node-signed transaction sender."""

from perp_keeper.adapters.chain.rpc import JsonRpcClient
from perp_keeper.adapters.chain.sender import RpcTransactionSender

__all__ = ["JsonRpcClient", "RpcTransactionSender"]
