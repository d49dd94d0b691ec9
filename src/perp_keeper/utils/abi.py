"""
ABI helpers for the settlement hook, the pool manager and ERC-20 tokens.

Selectors are derived from signatures at import time with eth-utils; argument
encoding and decoding uses eth-abi.
"""

from __future__ import annotations

from collections.abc import Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

from perp_keeper.domain.models import PoolKey
from perp_keeper.domain.reverts import (
    CUSTOM_ERROR_KINDS,
    PANIC_DIVISION_BY_ZERO,
    RevertKind,
    RevertReason,
)

POOL_KEY_TYPE = "(address,address,uint24,int24,address)"

# Storage slot of the `pools` mapping inside the pool manager.
POOLS_SLOT = 6
LIQUIDITY_OFFSET = 3

UINT160_MASK = (1 << 160) - 1
UINT128_MASK = (1 << 128) - 1


def selector(signature: str) -> bytes:
    """4-byte selector for a function or error signature."""
    return function_signature_to_4byte_selector(signature)


SEL_BATCH_EXECUTE = selector(f"revealAndBatchExecutePerps({POOL_KEY_TYPE},bytes32[],bool)")
SEL_PERP_BATCH_STATES = selector("perpBatchStates(bytes32)")
SEL_BATCH_INTERVAL = selector("BATCH_INTERVAL()")
SEL_POOL_MANAGER = selector("poolManager()")
SEL_EXTSLOAD = selector("extsload(bytes32)")
SEL_BALANCE_OF = selector("balanceOf(address)")
SEL_TRANSFER = selector("transfer(address,uint256)")

PANIC_SELECTOR = selector("Panic(uint256)")
ERROR_STRING_SELECTOR = selector("Error(string)")

CUSTOM_ERROR_SELECTORS: dict[bytes, RevertKind] = {
    selector(f"{kind.value}()"): kind for kind in CUSTOM_ERROR_KINDS
}


# =============================================================================
# Hex helpers
# =============================================================================


def to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def hex_to_bytes(value: str | None) -> bytes:
    if not value:
        return b""
    value = value[2:] if value.startswith(("0x", "0X")) else value
    return bytes.fromhex(value)


def bytes32(value: str) -> bytes:
    """Parse a 32-byte hex identifier (pool id, commitment hash)."""
    raw = hex_to_bytes(value)
    if len(raw) != 32:
        raise ValueError(f"expected 32 bytes, got {len(raw)}: {value!r}")
    return raw


def _address(value: str) -> str:
    return to_checksum_address(value)


# =============================================================================
# Pool identity
# =============================================================================


def compute_pool_id(pool_key: PoolKey) -> str:
    """keccak256 of the ABI-encoded pool key, as 0x-prefixed hex."""
    c0, c1, fee, tick_spacing, hooks = pool_key.as_tuple()
    encoded = encode([POOL_KEY_TYPE], [(_address(c0), _address(c1), fee, tick_spacing, _address(hooks))])
    return to_hex(keccak(encoded))


def pool_state_slot(pool_id: str) -> int:
    """Storage slot of Pool.State for `pool_id` inside the pool manager."""
    return int.from_bytes(keccak(bytes32(pool_id) + POOLS_SLOT.to_bytes(32, "big")), "big")


# =============================================================================
# Calldata
# =============================================================================


def encode_batch_execute(
    pool_key: PoolKey,
    commitment_hashes: Sequence[str],
    base_is_currency0: bool,
) -> bytes:
    c0, c1, fee, tick_spacing, hooks = pool_key.as_tuple()
    args = encode(
        [POOL_KEY_TYPE, "bytes32[]", "bool"],
        [
            (_address(c0), _address(c1), fee, tick_spacing, _address(hooks)),
            [bytes32(h) for h in commitment_hashes],
            base_is_currency0,
        ],
    )
    return SEL_BATCH_EXECUTE + args


def encode_perp_batch_states(pool_id: str) -> bytes:
    return SEL_PERP_BATCH_STATES + encode(["bytes32"], [bytes32(pool_id)])


def encode_batch_interval() -> bytes:
    return SEL_BATCH_INTERVAL


def encode_pool_manager() -> bytes:
    return SEL_POOL_MANAGER


def encode_extsload(slot: int) -> bytes:
    return SEL_EXTSLOAD + encode(["bytes32"], [slot.to_bytes(32, "big")])


def encode_balance_of(owner: str) -> bytes:
    return SEL_BALANCE_OF + encode(["address"], [_address(owner)])


def encode_transfer(to: str, amount: int) -> bytes:
    return SEL_TRANSFER + encode(["address", "uint256"], [_address(to), amount])


# =============================================================================
# Return data
# =============================================================================


def decode_uint(data: bytes) -> int:
    (value,) = decode(["uint256"], data)
    return value


def decode_address(data: bytes) -> str:
    (value,) = decode(["address"], data)
    return to_checksum_address(value)


def decode_batch_state(data: bytes) -> tuple[int, int]:
    last_batch_timestamp, commitment_count = decode(["uint256", "uint256"], data)
    return last_batch_timestamp, commitment_count


def decode_revert(data: bytes, message: str = "") -> RevertReason:
    """Map revert data onto the closed revert taxonomy by selector."""
    if not data:
        return RevertReason(kind=RevertKind.NO_DATA, message=message)

    sel = data[:4]

    if sel == PANIC_SELECTOR:
        try:
            (code,) = decode(["uint256"], data[4:])
        except DecodingError:
            return RevertReason(kind=RevertKind.UNKNOWN, raw=data, message=message)
        kind = RevertKind.ZERO_LIQUIDITY if code == PANIC_DIVISION_BY_ZERO else RevertKind.PANIC
        return RevertReason(kind=kind, panic_code=code, raw=data)

    if sel == ERROR_STRING_SELECTOR:
        try:
            (text,) = decode(["string"], data[4:])
        except DecodingError:
            return RevertReason(kind=RevertKind.UNKNOWN, raw=data, message=message)
        return RevertReason(kind=RevertKind.ERROR_STRING, message=text, raw=data)

    kind = CUSTOM_ERROR_SELECTORS.get(sel)
    if kind is not None:
        return RevertReason(kind=kind, raw=data)

    return RevertReason(kind=RevertKind.UNKNOWN, raw=data, message=message)
