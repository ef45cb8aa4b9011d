from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from blockbias.errors import InvalidConfiguration
from blockbias.stats.codec import validate_block_size


@dataclass(frozen=True)
class BlockStream:
    blocks: list[bytes]
    block_size: int
    dropped_bytes: int


def slice_blocks(data: bytes, block_size: int, *, max_bits: int | None = None) -> BlockStream:
    """
    Cut raw bytes into block_size-bit blocks. A shorter trailing block is
    dropped and its length reported in dropped_bytes.
    """
    width = validate_block_size(block_size, max_bits=max_bits)
    usable = len(data) - len(data) % width
    blocks = [bytes(data[i : i + width]) for i in range(0, usable, width)]
    return BlockStream(blocks=blocks, block_size=block_size, dropped_bytes=len(data) - usable)


def read_blocks(path: str | Path, block_size: int, *, max_bits: int | None = None) -> BlockStream:
    p = Path(path)
    if not p.is_file():
        raise InvalidConfiguration(f"Input file not found: {p}")
    try:
        data = p.read_bytes()
    except OSError as e:
        raise InvalidConfiguration(f"Cannot read input file {p}: {e}") from e
    return slice_blocks(data, block_size, max_bits=max_bits)


def split_halves(blocks: Sequence[bytes]) -> tuple[list[bytes], list[bytes]]:
    # Training half takes the extra block when the count is odd.
    cut = (len(blocks) + 1) // 2
    return list(blocks[:cut]), list(blocks[cut:])
