from __future__ import annotations

from itertools import groupby
from typing import Iterable, Sequence

from blockbias.errors import EmptyInputError
from blockbias.stats.codec import encode_blocks


def count_keys(keys: Iterable[int]) -> dict[int, int]:
    # Sort once, then run-length encode adjacent equal keys.
    ordered = sorted(keys)
    if not ordered:
        raise EmptyInputError("Cannot build a frequency table from zero blocks")
    return {key: sum(1 for _ in run) for key, run in groupby(ordered)}


def build_frequency_table(blocks: Sequence[bytes], block_size: int) -> dict[int, int]:
    """
    Map each distinct block key to its number of occurrences.

    The returned dict iterates in ascending key order and its counts sum to
    len(blocks).
    """
    keys = encode_blocks(blocks, block_size)
    return count_keys(keys)
