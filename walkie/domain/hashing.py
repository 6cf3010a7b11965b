"""Hash-chain utility.

Every value in a map is a keccak256 of a Solidity-style packed tuple:

    keccak256(final_seed || uint64 game_id || tag || uint8 index... || VERSION_TAG)

The packing matches ``abi.encodePacked`` so an on-chain verifier computes the
same numbers: bytes32 as raw bytes, uint64 as 8 bytes big-endian, uint8 as
one byte, strings as raw UTF-8.
"""

from __future__ import annotations

import secrets
from typing import Final

from eth_utils import keccak

VERSION_LABEL: Final[bytes] = b"WALKIE_V5_PROVABLY_FAIR"
VERSION_TAG: Final[bytes] = keccak(VERSION_LABEL)

UINT64_MAX = 2**64 - 1
UINT8_MAX = 2**8 - 1


def keccak256(data: bytes) -> bytes:
    """Return the 32-byte keccak256 digest of ``data``."""
    return keccak(bytes(data))


def pack_bytes32(value: bytes) -> bytes:
    if len(value) != 32:
        raise ValueError(f"expected 32-byte value, got {len(value)} bytes")
    return bytes(value)


def pack_uint64(value: int) -> bytes:
    if not 0 <= value <= UINT64_MAX:
        raise ValueError(f"uint64 out of range: {value}")
    return value.to_bytes(8, "big")


def pack_uint8(value: int) -> bytes:
    if not 0 <= value <= UINT8_MAX:
        raise ValueError(f"uint8 out of range: {value}")
    return value.to_bytes(1, "big")


def derive(final_seed: bytes, game_id: int, tag: str, *indices: int) -> int:
    """Domain-separated pseudo-random integer for one draw.

    Args:
        final_seed (bytes): Root seed of the game
        game_id (int): Packed as uint64
        tag (str): Domain tag such as "start", "bomb" or "reward"
        indices (int): Loop indices, each packed as uint8

    Returns:
        int: The digest read as a big-endian unsigned integer
    """
    blob = pack_bytes32(final_seed) + pack_uint64(game_id) + tag.encode("utf-8")
    for index in indices:
        blob += pack_uint8(index)
    blob += VERSION_TAG
    return int.from_bytes(keccak256(blob), "big")


def compute_final_seed(vrf_output: bytes, operator_salt: bytes, game_id: int) -> bytes:
    """FinalSeed = keccak256(vrf_output || salt || uint64 game_id || VERSION_TAG)."""
    return keccak256(
        pack_bytes32(vrf_output)
        + pack_bytes32(operator_salt)
        + pack_uint64(game_id)
        + VERSION_TAG
    )


def commit_salt(operator_salt: bytes) -> bytes:
    return keccak256(pack_bytes32(operator_salt))


def generate_salt() -> bytes:
    return secrets.token_bytes(32)


def to_hex32(value: bytes) -> str:
    """Convert a 32-byte value to a 0x-prefixed hex string."""
    return "0x" + pack_bytes32(value).hex()


def from_hex32(value: str) -> bytes:
    """Parse a 0x-prefixed 32-byte hex string."""
    text = value[2:] if value.startswith(("0x", "0X")) else value
    if len(text) != 64:
        raise ValueError("expected 32-byte hex value (0x + 64 chars)")
    return bytes.fromhex(text)
