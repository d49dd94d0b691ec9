"""
JSON-RPC client over aiohttp.

Transport failures are retried a bounded number of times with a fixed delay.
Node-level JSON-RPC errors (reverts included) are returned immediately, and
eth_sendTransaction is never retried.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import aiohttp

from perp_keeper.config.settings import ChainSettings
from perp_keeper.domain.errors import ChainReadError, RpcRevertError
from perp_keeper.observability.logging import get_logger
from perp_keeper.ports.chain import ChainRpcPort
from perp_keeper.utils.abi import hex_to_bytes, to_hex

logger = get_logger(__name__)

# JSON-RPC error codes nodes use for execution reverts.
REVERT_ERROR_CODES = (3, -32015)

# Geth-style nodes report some reverts as a generic server error; only this
# code is paired with the "execution reverted" message.
SERVER_ERROR_CODE = -32000
EXECUTION_REVERTED = "execution reverted"

# Revert payloads are sometimes nested (error.data.data) depending on the node.
MAX_ERROR_DEPTH = 4


class JsonRpcError(ChainReadError):
    """The node answered with a JSON-RPC error object."""

    error_code = "JSON_RPC_ERROR"

    def __init__(self, message: str, *, rpc_code: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.rpc_code = rpc_code
        self.details["rpc_code"] = rpc_code


def extract_revert_data(error: Any) -> bytes:
    """Find the hex revert payload inside a JSON-RPC error object."""
    current = error
    for _ in range(MAX_ERROR_DEPTH):
        if isinstance(current, str):
            if current.startswith("0x"):
                try:
                    return hex_to_bytes(current)
                except ValueError:
                    return b""
            return b""
        if not isinstance(current, dict) or "data" not in current:
            return b""
        current = current["data"]
    return b""


class JsonRpcClient(ChainRpcPort):
    """
    Minimal Ethereum JSON-RPC client.

    One aiohttp session per client; requests are posted individually
    (no batching), each with its own timeout and retries.
    """

    def __init__(self, settings: ChainSettings, session: aiohttp.ClientSession | None = None):
        self._url = settings.rpc_url
        self._retry_count = max(1, settings.retry_count)
        self._retry_delay = settings.retry_delay_seconds
        self._timeout = aiohttp.ClientTimeout(total=settings.request_timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(self, method: str, params: list[Any], *, retry: bool = True) -> Any:
        """
        Send a JSON-RPC request and return its `result`.

        Raises:
            RpcRevertError: Execution reverted.
            JsonRpcError: Any other error object from the node.
            ChainReadError: Transport failure after the last attempt.
        """
        attempts = self._retry_count if retry else 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
            try:
                session = await self._get_session()
                async with session.post(self._url, json=payload) as response:
                    if response.status == 429 or response.status >= 500:
                        raise aiohttp.ClientResponseError(
                            response.request_info,
                            response.history,
                            status=response.status,
                            message=response.reason or "",
                        )
                    response.raise_for_status()
                    body = await response.json(content_type=None)
                if not isinstance(body, dict):
                    raise ValueError(f"malformed JSON-RPC response: {body!r:.80}")
            except (TimeoutError, aiohttp.ClientError, ValueError) as e:
                last_error = e
                logger.warning(f"RPC {method} attempt {attempt}/{attempts} failed: {type(e).__name__}: {e}")
                if attempt < attempts:
                    await asyncio.sleep(self._retry_delay)
                continue

            if "error" in body and body["error"] is not None:
                raise self._error_from_body(method, body["error"])
            return body.get("result")

        raise ChainReadError(
            f"RPC {method} failed after {attempts} attempt(s)",
            details={"method": method, "url_host": self._url.split("/")[2] if "://" in self._url else self._url},
        ) from last_error

    @staticmethod
    def _error_from_body(method: str, error: Any) -> ChainReadError:
        if not isinstance(error, dict):
            return JsonRpcError(f"RPC {method} error: {error!r}")

        code = error.get("code")
        message = str(error.get("message", ""))
        revert_data = extract_revert_data(error)

        reverted = code in REVERT_ERROR_CODES or (
            code == SERVER_ERROR_CODE and message.lower().startswith(EXECUTION_REVERTED)
        )
        if revert_data or reverted:
            return RpcRevertError(message or "execution reverted", revert_data=revert_data)
        return JsonRpcError(f"RPC {method} error {code}: {message}", rpc_code=code)

    # =========================================================================
    # ChainRpcPort
    # =========================================================================

    async def call(self, to: str, data: bytes, *, from_address: str | None = None) -> bytes:
        tx: dict[str, str] = {"to": to, "data": to_hex(data)}
        if from_address:
            tx["from"] = from_address
        result = await self.request("eth_call", [tx, "latest"])
        if result is not None and not isinstance(result, str):
            raise ChainReadError(f"eth_call returned non-hex result: {result!r:.80}")
        try:
            return hex_to_bytes(result)
        except ValueError as e:
            raise ChainReadError(f"eth_call returned malformed hex: {result!r:.80}") from e

    async def send_transaction(self, from_address: str, to: str, data: bytes, value: int = 0) -> str:
        tx = {"from": from_address, "to": to, "data": to_hex(data)}
        if value:
            tx["value"] = hex(value)
        return await self.request("eth_sendTransaction", [tx], retry=False)

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        return await self.request("eth_getTransactionReceipt", [tx_hash])
