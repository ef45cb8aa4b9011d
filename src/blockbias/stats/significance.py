from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

from scipy.stats import binomtest

from blockbias.errors import OracleFailure


class SignificanceOracle(Protocol):
    def p_value(self, successes: int, trials: int, null_probability: float) -> float: ...


@dataclass(frozen=True)
class BinomialOracle:
    """Exact binomial test backed by scipy.stats.binomtest."""

    alternative: str = "two-sided"

    def p_value(self, successes: int, trials: int, null_probability: float) -> float:
        try:
            res = binomtest(int(successes), int(trials), float(null_probability), alternative=self.alternative)
        except Exception as e:
            raise OracleFailure(
                f"binomtest failed for successes={successes} trials={trials} p={null_probability!r}: {e}"
            ) from e
        return float(res.pvalue)


def checked_p_value(oracle: SignificanceOracle, successes: int, trials: int, null_probability: float) -> float:
    try:
        value = oracle.p_value(successes, trials, null_probability)
    except OracleFailure:
        raise
    except Exception as e:
        raise OracleFailure(f"Significance oracle raised: {e}") from e
    try:
        p = float(value)
    except (TypeError, ValueError) as e:
        raise OracleFailure(f"Significance oracle returned a non-numeric value: {value!r}") from e
    if not math.isfinite(p) or p < 0.0 or p > 1.0:
        raise OracleFailure(f"Significance oracle returned out-of-range p-value: {value!r}")
    return p
