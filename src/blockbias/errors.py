from __future__ import annotations


class BlockBiasError(RuntimeError):
    """Base class for failures that abort an evaluation run."""


class InvalidConfiguration(BlockBiasError):
    pass


class EmptyInputError(BlockBiasError):
    pass


class DegenerateStatistic(BlockBiasError):
    pass


class OracleFailure(BlockBiasError):
    pass
