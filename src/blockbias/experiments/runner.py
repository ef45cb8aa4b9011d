from __future__ import annotations

import platform
import sys
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from blockbias.canonical import get_canonical, load_canonical
from blockbias.config import RunConfig, resolve_run_config
from blockbias.datasets.synthetic import generate_stream
from blockbias.errors import BlockBiasError, EmptyInputError
from blockbias.hashing import fingerprint, sha256_file
from blockbias.io.blocks import read_blocks, split_halves
from blockbias.io.logging import JsonlLogger, make_logger
from blockbias.io.run_record import compute_run_record_hash, write_run_record
from blockbias.stats.codec import validate_block_size
from blockbias.stats.deviation import rank_deviation
from blockbias.stats.frequency import build_frequency_table
from blockbias.stats.holdout import validate_holdout
from blockbias.stats.significance import BinomialOracle, SignificanceOracle, checked_p_value


class RunError(BlockBiasError):
    pass


@dataclass(frozen=True)
class TestResult:
    __test__ = False

    training_z: float
    testing_z: float
    p_value: float
    t_max: int
    observed_count: int
    null_probability: float
    block_size: int
    training_blocks: int
    testing_blocks: int
    distinct_keys: int
    degenerate_ranks: int


def evaluate_blocks(
    training: Sequence[bytes],
    testing: Sequence[bytes],
    block_size: int,
    *,
    oracle: SignificanceOracle | None = None,
    tolerance: float = 0.0,
    max_bits: int | None = None,
) -> TestResult:
    """
    Discover the most anomalous threshold on `training` and check it on
    `testing`. The oracle is called exactly once.
    """
    validate_block_size(block_size, max_bits=max_bits)
    if not training:
        raise EmptyInputError("Training collection is empty")
    if not testing:
        raise EmptyInputError("Testing collection is empty")

    table = build_frequency_table(training, block_size)
    ranking = rank_deviation(table, block_size, tolerance=tolerance)
    holdout = validate_holdout(testing, ranking.flagged, ranking.t_max, block_size, tolerance=tolerance)
    p = checked_p_value(
        oracle if oracle is not None else BinomialOracle(),
        holdout.observed_count,
        holdout.trials,
        holdout.null_probability,
    )
    return TestResult(
        training_z=ranking.training_z,
        testing_z=holdout.testing_z,
        p_value=p,
        t_max=ranking.t_max,
        observed_count=holdout.observed_count,
        null_probability=holdout.null_probability,
        block_size=int(block_size),
        training_blocks=len(training),
        testing_blocks=len(testing),
        distinct_keys=len(ranking.ranked),
        degenerate_ranks=ranking.degenerate_ranks,
    )


def evaluate_stream(
    blocks: Sequence[bytes],
    block_size: int,
    *,
    oracle: SignificanceOracle | None = None,
    tolerance: float = 0.0,
    max_bits: int | None = None,
) -> TestResult:
    training, testing = split_halves(blocks)
    return evaluate_blocks(training, testing, block_size, oracle=oracle, tolerance=tolerance, max_bits=max_bits)


def result_fingerprint(result: TestResult, canonical: dict[str, Any]) -> str:
    return fingerprint(asdict(result), canonical)


def format_p_value(p: float, p_fmt: str) -> str:
    # Exponent without sign padding or leading zeros: 1e-4, 0e0.
    mantissa, _, exponent = format(p, p_fmt).partition("e")
    if not exponent:
        return mantissa
    return f"{mantissa}e{int(exponent)}"


def format_report(result: TestResult, canonical: dict[str, Any]) -> str:
    p_fmt = str(get_canonical(canonical, "DEFAULTS.P_VALUE_FORMAT"))
    return "\n".join(
        [
            f"Training Z-score: {result.training_z}",
            f"Testing Z-score: {result.testing_z}",
            f"p-value: {format_p_value(result.p_value, p_fmt)}",
        ]
    )


def _utc_compact() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _make_run_dir(*, runs_root: Path, canonical: dict[str, Any]) -> tuple[str, Path]:
    prefix = str(get_canonical(canonical, "OUTPUT_NAMING.RUN_DIR_PREFIX"))
    for attempt in range(10000):
        run_id = f"{prefix}{_utc_compact()}_{attempt:04d}"
        run_dir = runs_root / run_id
        if run_dir.exists():
            continue
        run_dir.mkdir(parents=True, exist_ok=False)
        return run_id, run_dir
    raise RunError("Unable to allocate a fresh immutable run directory")


def _runs_root_for_output_root(*, output_root: Path, canonical: dict[str, Any]) -> Path:
    runs_rel = Path(str(get_canonical(canonical, "PATHS.PATH_RUNS_ROOT")))
    out_rel = Path(str(get_canonical(canonical, "PATHS.PATH_OUTPUT_ROOT")))
    try:
        runs_sub = runs_rel.relative_to(out_rel)
    except ValueError:
        runs_sub = Path(runs_rel.name)
    return output_root / runs_sub


def _load_split(
    *, input_path: Path, cfg: RunConfig, logger: JsonlLogger | None
) -> tuple[list[bytes], list[bytes]]:
    stream = read_blocks(input_path, cfg.block_size, max_bits=cfg.max_block_size_bits)
    if stream.dropped_bytes:
        print(
            f"Data are not aligned with block size, dropping last block ({stream.dropped_bytes} bytes)",
            file=sys.stderr,
        )
        if logger is not None:
            logger.log("EVENT_BLOCK_DROPPED", {"dropped_bytes": int(stream.dropped_bytes)})
    training, testing = split_halves(stream.blocks)
    if logger is not None:
        logger.log(
            "EVENT_SPLIT",
            {"total_blocks": len(stream.blocks), "training_blocks": len(training), "testing_blocks": len(testing)},
        )
    return training, testing


def run_evaluation(args: Any, *, oracle: SignificanceOracle | None = None) -> int:
    canonical = load_canonical()
    cfg = resolve_run_config(args, canonical)
    input_path = Path(str(args.input_file))
    validate_block_size(cfg.block_size, max_bits=cfg.max_block_size_bits)

    runs_root = _runs_root_for_output_root(output_root=cfg.output_root, canonical=canonical)
    run_id, run_dir = _make_run_dir(runs_root=runs_root, canonical=canonical)
    logger = make_logger(run_dir=run_dir, canonical=canonical, run_id=run_id)
    logger.log(
        "EVENT_RUN_START",
        {
            "input_path": str(input_path),
            "block_size": int(cfg.block_size),
            "degeneracy_tolerance": float(cfg.degeneracy_tolerance),
        },
    )

    try:
        training, testing = _load_split(input_path=input_path, cfg=cfg, logger=logger)
        input_fp = sha256_file(input_path)
        result = evaluate_blocks(
            training,
            testing,
            cfg.block_size,
            oracle=oracle,
            tolerance=cfg.degeneracy_tolerance,
            max_bits=cfg.max_block_size_bits,
        )
    except BlockBiasError as e:
        logger.log("EVENT_RUN_FAILED", {"error_type": type(e).__name__, "message": str(e)})
        raise
    except OSError as e:
        logger.log("EVENT_RUN_FAILED", {"error_type": type(e).__name__, "message": str(e)})
        raise RunError(f"I/O failure while evaluating {input_path}: {e}") from e

    logger.log(
        "EVENT_RANKING_DONE",
        {
            "t_max": result.t_max,
            "training_z": result.training_z,
            "distinct_keys": result.distinct_keys,
            "degenerate_ranks": result.degenerate_ranks,
        },
    )
    logger.log(
        "EVENT_HOLDOUT_DONE",
        {"observed_count": result.observed_count, "testing_z": result.testing_z, "p_value": result.p_value},
    )

    run_record: dict[str, Any] = {
        "schema_version": int(get_canonical(canonical, "SCHEMAS.RUN_RECORD_SCHEMA_VERSION")),
        "project_id": str(get_canonical(canonical, "PROJECT_ID")),
        "project_version": str(get_canonical(canonical, "PROJECT_VERSION")),
        "run_id": run_id,
        "timestamp_utc": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "python_version": platform.python_version(),
        "platform": platform.platform(),
        "input_path": str(input_path),
        "input_fingerprint": input_fp,
        "degeneracy_tolerance": float(cfg.degeneracy_tolerance),
        **asdict(result),
        "paths": {"logs_file": logger.path.name},
    }
    record_name = str(get_canonical(canonical, "FILES.RUN_RECORD_FILENAME"))
    run_record[str(get_canonical(canonical, "OUTPUT_NAMING.RUN_RECORD_HASH_FIELD"))] = compute_run_record_hash(
        run_record, canonical
    )
    write_run_record(str(run_dir / record_name), run_record)
    logger.log("EVENT_RUN_END", {"run_record": record_name})

    print(format_report(result, canonical))
    return 0


def determinism_smoke_test(args: Any, *, oracle: SignificanceOracle | None = None) -> int:
    canonical = load_canonical()
    cfg = resolve_run_config(args, canonical)
    input_path = Path(str(args.input_file))

    hashes: list[str] = []
    for _ in range(2):
        training, testing = _load_split(input_path=input_path, cfg=cfg, logger=None)
        result = evaluate_blocks(
            training,
            testing,
            cfg.block_size,
            oracle=oracle,
            tolerance=cfg.degeneracy_tolerance,
            max_bits=cfg.max_block_size_bits,
        )
        hashes.append(result_fingerprint(result, canonical))
    if hashes[0] != hashes[1]:
        raise RunError(f"Determinism smoke test failed: {hashes[0]} != {hashes[1]}")
    print(f"DETERMINISM_OK result_hash={hashes[0]}")
    return 0


def generate_synthetic(args: Any) -> int:
    canonical = load_canonical()
    bias = args.bias if args.bias is not None else float(get_canonical(canonical, "DEFAULTS.SYNTH_BIAS"))
    seed = args.seed if args.seed is not None else int(get_canonical(canonical, "DEFAULTS.SYNTH_SEED"))
    data = generate_stream(
        block_size=int(args.block_size),
        num_blocks=int(args.num_blocks),
        bias=float(bias),
        seed=int(seed),
    )
    out = Path(str(args.output))
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(data)
    print(f"SYNTH_OK output={out} bytes={len(data)}")
    return 0
