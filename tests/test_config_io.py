from __future__ import annotations

import argparse
from pathlib import Path

import pytest

from blockbias.canonical import CanonicalError, get_canonical, load_canonical
from blockbias.config import ConfigError, load_config, resolve_run_config
from blockbias.hashing import HashingError, canonical_json_bytes, decimal_str, fingerprint
from blockbias.io.logging import make_logger, read_events
from blockbias.io.run_record import compute_run_record_hash, read_run_record, write_run_record


def _args(**kw: object) -> argparse.Namespace:
    base = {"block_size": 8, "config_path": None, "tolerance": None, "output_root": None}
    base.update(kw)
    return argparse.Namespace(**base)


def test_canonical_lookup() -> None:
    canonical = load_canonical()
    assert get_canonical(canonical, "LIMITS.MAX_BLOCK_SIZE_BITS") == 1024
    assert get_canonical(canonical, "CANONICAL.FILES.RUN_RECORD_FILENAME") == "run_record.json"
    with pytest.raises(CanonicalError):
        get_canonical(canonical, "LIMITS.NOPE")


def test_load_config_resolves_canonical_templates(tmp_path: Path) -> None:
    canonical = load_canonical()
    cfg_path = tmp_path / "run.yaml"
    cfg_path.write_text(
        "schema_version_key: 1\n"
        "degeneracy_tolerance: DEFAULTS.DEGENERACY_TOLERANCE\n"
        "output_root: ${CANONICAL.PATHS.PATH_OUTPUT_ROOT}/nightly\n",
        encoding="utf-8",
    )
    cfg = load_config(str(cfg_path), canonical)
    assert cfg["output_root"] == "outputs/nightly"
    assert cfg["degeneracy_tolerance"] == 0.0


def test_load_config_rejects_bad_files(tmp_path: Path) -> None:
    canonical = load_canonical()
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.yaml"), canonical)

    bad_schema = tmp_path / "schema.yaml"
    bad_schema.write_text("schema_version_key: 99\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(bad_schema), canonical)

    unknown = tmp_path / "unknown.yaml"
    unknown.write_text("block_sizes: [8, 16]\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(unknown), canonical)

    not_mapping = tmp_path / "list.yaml"
    not_mapping.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(not_mapping), canonical)


def test_resolve_run_config_precedence(tmp_path: Path) -> None:
    canonical = load_canonical()
    cfg_path = tmp_path / "run.yaml"
    cfg_path.write_text("degeneracy_tolerance: 1.0e-30\noutput_root: from_file\n", encoding="utf-8")

    defaults = resolve_run_config(_args(), canonical)
    assert defaults.degeneracy_tolerance == 0.0
    assert defaults.output_root == Path("outputs")
    assert defaults.max_block_size_bits == 1024

    from_file = resolve_run_config(_args(config_path=str(cfg_path)), canonical)
    assert from_file.degeneracy_tolerance == 1.0e-30
    assert from_file.output_root == Path("from_file")

    from_cli = resolve_run_config(_args(config_path=str(cfg_path), tolerance=0.0, output_root="cli"), canonical)
    assert from_cli.degeneracy_tolerance == 0.0
    assert from_cli.output_root == Path("cli")

    with pytest.raises(ConfigError):
        resolve_run_config(_args(tolerance=-1.0), canonical)


def test_canonical_json_and_fingerprint() -> None:
    canonical = load_canonical()
    assert decimal_str(0.1) == "0.1"
    assert decimal_str(1e-20) == "0.00000000000000000001"
    assert canonical_json_bytes({"b": 1, "a": [2]}, canonical) == b'{"a":[2],"b":1}'
    with pytest.raises(HashingError):
        canonical_json_bytes({"x": 0.5}, canonical)
    assert fingerprint({"z": 1.5, "n": 2}, canonical) == fingerprint({"n": 2, "z": 1.5}, canonical)
    assert fingerprint({"z": 1.5}, canonical) != fingerprint({"z": 2.5}, canonical)


def test_jsonl_logger_writes_canonical_event_names(tmp_path: Path) -> None:
    canonical = load_canonical()
    logger = make_logger(run_dir=tmp_path, canonical=canonical, run_id="run_x")
    logger.log("EVENT_RUN_START", {"block_size": 8})
    logger.log("EVENT_RUN_END", {})
    with pytest.raises(KeyError):
        logger.log("EVENT_NOT_A_THING", {})
    events = read_events(logger.path)
    assert [e["event_type"] for e in events] == ["RUN_START", "RUN_END"]
    assert events[0]["run_id"] == "run_x"
    assert events[0]["block_size"] == 8


def test_run_record_hash_ignores_volatile_fields(tmp_path: Path) -> None:
    canonical = load_canonical()
    a = {"run_id": "run_a", "timestamp_utc": "t1", "training_z": 3.25, "t_max": 2}
    b = {"run_id": "run_b", "timestamp_utc": "t2", "training_z": 3.25, "t_max": 2}
    assert compute_run_record_hash(a, canonical) == compute_run_record_hash(b, canonical)
    b["t_max"] = 3
    assert compute_run_record_hash(a, canonical) != compute_run_record_hash(b, canonical)

    path = tmp_path / "nested" / "run_record.json"
    write_run_record(str(path), a)
    assert read_run_record(str(path)) == a
