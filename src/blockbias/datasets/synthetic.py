from __future__ import annotations

import random

from blockbias.errors import InvalidConfiguration
from blockbias.stats.codec import validate_block_size


def _rng(seed: int) -> random.Random:
    return random.Random(int(seed))


def hot_blocks(*, block_size: int, num_hot: int, seed: int) -> list[bytes]:
    """The over-represented block values planted by generate_stream."""
    width = validate_block_size(block_size)
    if int(num_hot) < 1 or int(num_hot) > 2**block_size:
        raise InvalidConfiguration(f"num_hot must be within [1, 2**block_size], got {num_hot}")
    rng = _rng(int(seed) ^ 0x5EED)
    out: list[bytes] = []
    seen: set[bytes] = set()
    while len(out) < int(num_hot):
        b = rng.getrandbits(block_size).to_bytes(width, "little")
        if b in seen:
            continue
        seen.add(b)
        out.append(b)
    return out


def generate_stream(
    *,
    block_size: int,
    num_blocks: int,
    bias: float = 0.0,
    num_hot: int = 4,
    seed: int = 0,
) -> bytes:
    """
    Deterministic byte stream of num_blocks blocks. Each block is, with
    probability `bias`, one of `num_hot` fixed values, and uniform otherwise.
    """
    width = validate_block_size(block_size)
    if int(num_blocks) < 0:
        raise InvalidConfiguration(f"num_blocks must be non-negative, got {num_blocks}")
    if not 0.0 <= float(bias) <= 1.0:
        raise InvalidConfiguration(f"bias must be within [0, 1], got {bias}")

    hot = hot_blocks(block_size=block_size, num_hot=num_hot, seed=seed) if float(bias) > 0.0 else []
    rng = _rng(seed)
    chunks: list[bytes] = []
    for _ in range(int(num_blocks)):
        if hot and rng.random() < float(bias):
            chunks.append(rng.choice(hot))
        else:
            chunks.append(rng.getrandbits(block_size).to_bytes(width, "little"))
    return b"".join(chunks)
