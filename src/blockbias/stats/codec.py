from __future__ import annotations

from typing import Iterable

from blockbias.errors import InvalidConfiguration


def validate_block_size(block_size: int, *, max_bits: int | None = None) -> int:
    """
    Check that block_size (in bits) is usable for byte-oriented blocks and
    return the block width in bytes.
    """
    if isinstance(block_size, bool) or not isinstance(block_size, int):
        raise InvalidConfiguration(f"block_size must be an integer number of bits, got {block_size!r}")
    if block_size <= 0:
        raise InvalidConfiguration(f"block_size must be positive, got {block_size}")
    if block_size % 8 != 0:
        raise InvalidConfiguration(f"block_size must be a multiple of 8 bits, got {block_size}")
    if max_bits is not None and block_size > int(max_bits):
        raise InvalidConfiguration(f"block_size {block_size} exceeds the supported maximum of {int(max_bits)} bits")
    return block_size // 8


def encode_block(block: bytes, block_size: int) -> int:
    """Little-endian unsigned integer key of a single block."""
    width = validate_block_size(block_size)
    if len(block) != width:
        raise InvalidConfiguration(f"Block of {len(block)} bytes does not match block_size {block_size} ({width} bytes)")
    return int.from_bytes(block, "little")


def encode_blocks(blocks: Iterable[bytes], block_size: int) -> list[int]:
    width = validate_block_size(block_size)
    keys: list[int] = []
    for i, block in enumerate(blocks):
        if len(block) != width:
            raise InvalidConfiguration(f"Block {i} has {len(block)} bytes, expected {width}")
        keys.append(int.from_bytes(block, "little"))
    return keys
