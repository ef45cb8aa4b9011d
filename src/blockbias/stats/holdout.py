from __future__ import annotations

import math
from dataclasses import dataclass
from typing import AbstractSet, Sequence

from blockbias.errors import DegenerateStatistic, EmptyInputError, InvalidConfiguration
from blockbias.stats.codec import encode_blocks
from blockbias.stats.deviation import check_tolerance, checked_variance, null_probability


@dataclass(frozen=True)
class HoldoutResult:
    testing_z: float
    observed_count: int
    trials: int
    null_probability: float


def validate_holdout(
    testing_blocks: Sequence[bytes],
    flagged: AbstractSet[int],
    t_max: int,
    block_size: int,
    *,
    tolerance: float = 0.0,
) -> HoldoutResult:
    """
    Count held-out blocks that fall in the flagged set and score that count
    against the uniform expectation m*q, q = t_max/2**block_size.
    """
    tol = check_tolerance(tolerance)
    if t_max < 1:
        raise InvalidConfiguration(f"t_max must be at least 1, got {t_max}")
    keys = encode_blocks(testing_blocks, block_size)
    if not keys:
        raise EmptyInputError("Testing collection is empty")

    observed = sum(1 for k in keys if k in flagged)
    m = len(keys)
    q = null_probability(t_max, block_size)
    var = checked_variance(q, tolerance=tol, rank=t_max, block_size=block_size)
    z = abs(observed - m * q) / math.sqrt(m * var)
    if not math.isfinite(z):
        raise DegenerateStatistic(f"Non-finite held-out statistic for t_max {t_max} with block_size {block_size}")
    return HoldoutResult(testing_z=z, observed_count=observed, trials=m, null_probability=q)
