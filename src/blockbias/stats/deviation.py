from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np

from blockbias.errors import DegenerateStatistic, EmptyInputError, InvalidConfiguration


@dataclass(frozen=True)
class RankingResult:
    ranked: tuple[int, ...]
    z_scores: tuple[float, ...]
    flagged: frozenset[int]
    t_max: int
    training_z: float
    total: int
    degenerate_ranks: int


def check_tolerance(tolerance: float) -> float:
    tol = float(tolerance)
    if not math.isfinite(tol) or tol < 0.0:
        raise InvalidConfiguration(f"degeneracy tolerance must be a finite non-negative number, got {tolerance!r}")
    return tol


def _check_bits(block_size: int) -> int:
    if isinstance(block_size, bool) or not isinstance(block_size, int) or block_size <= 0:
        raise InvalidConfiguration(f"block_size must be a positive integer number of bits, got {block_size!r}")
    return block_size


def null_probability(rank: int, block_size: int) -> float:
    """Mass of the `rank` most frequent values under a uniform null over 2**block_size values."""
    return math.ldexp(float(rank), -_check_bits(block_size))


def checked_variance(q: float, *, tolerance: float, rank: int, block_size: int) -> float:
    var = q * (1.0 - q)
    if not var > tolerance:
        raise DegenerateStatistic(
            f"q*(1-q)={var!r} at rank {rank} with block_size {block_size} is not above tolerance {tolerance!r}"
        )
    return var


def deviation_z(occur: int, total: int, rank: int, block_size: int, *, tolerance: float = 0.0) -> float:
    """
    z(i) = |n*(p - q)| / sqrt(n*q*(1 - q)) with p = occur/n and q = rank/2**block_size.
    """
    if total <= 0:
        raise EmptyInputError("Deviation statistic needs at least one training block")
    tol = check_tolerance(tolerance)
    q = null_probability(rank, block_size)
    var = checked_variance(q, tolerance=tol, rank=rank, block_size=block_size)
    p = occur / total
    z = abs(total * (p - q)) / math.sqrt(total * var)
    if not math.isfinite(z):
        raise DegenerateStatistic(f"Non-finite deviation statistic at rank {rank} with block_size {block_size}")
    return z


def ranked_keys(table: Mapping[int, int]) -> list[int]:
    # Descending count, ties by ascending key.
    return sorted(table, key=lambda k: (-table[k], k))


def scan_z_scores(counts: Sequence[int], block_size: int, *, tolerance: float = 0.0) -> np.ndarray:
    """
    Deviation statistic for every rank 1..len(counts), counts given in ranked
    order. Degenerate ranks come back as nan.
    """
    tol = check_tolerance(tolerance)
    bits = _check_bits(block_size)
    counts_arr = np.asarray(counts, dtype=np.int64)
    if counts_arr.size == 0:
        raise EmptyInputError("Cannot scan an empty frequency table")
    n = float(counts_arr.sum())
    occur = np.cumsum(counts_arr).astype(np.float64)
    ranks = np.arange(1, counts_arr.size + 1, dtype=np.float64)
    q = np.ldexp(ranks, -bits)
    var = q * (1.0 - q)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        z = np.abs(n * (occur / n - q)) / np.sqrt(n * var)
    valid = (var > tol) & np.isfinite(z)
    return np.where(valid, z, np.nan)


def rank_deviation(table: Mapping[int, int], block_size: int, *, tolerance: float = 0.0) -> RankingResult:
    """
    Search every candidate threshold rank and keep the most anomalous one.

    Ranks whose statistic is undefined (q*(1-q) at or below tolerance) are not
    eligible; if no rank is eligible the run fails with DegenerateStatistic.
    """
    if not table:
        raise EmptyInputError("Cannot rank an empty frequency table")
    ranked = ranked_keys(table)
    counts = [int(table[k]) for k in ranked]
    z = scan_z_scores(counts, block_size, tolerance=tolerance)

    valid = ~np.isnan(z)
    if not valid.any():
        raise DegenerateStatistic(f"Deviation statistic is degenerate at every rank for block_size {block_size}")
    best = int(np.argmax(np.where(valid, z, -np.inf)))
    t_max = best + 1

    return RankingResult(
        ranked=tuple(ranked),
        z_scores=tuple(float(x) for x in z),
        flagged=frozenset(ranked[:t_max]),
        t_max=t_max,
        training_z=float(z[best]),
        total=int(sum(counts)),
        degenerate_ranks=int((~valid).sum()),
    )
