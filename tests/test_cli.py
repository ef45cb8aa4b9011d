from __future__ import annotations

import json
from pathlib import Path

import pytest

import blockbias.experiments.runner as runner
from blockbias.cli import main
from blockbias.datasets.synthetic import generate_stream


def _write_stream(path: Path, *, block_size: int = 8, num_blocks: int = 2000, bias: float = 0.3, extra: bytes = b"") -> Path:
    path.write_bytes(generate_stream(block_size=block_size, num_blocks=num_blocks, bias=bias, seed=5) + extra)
    return path


def _only_run_dir(out_root: Path) -> Path:
    runs = sorted((out_root / "runs").iterdir())
    assert len(runs) == 1
    return runs[0]


def test_run_prints_scores_and_writes_record(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    data = _write_stream(tmp_path / "data.bin")
    out_root = tmp_path / "out"
    rc = main(["run", "8", str(data), "--output-root", str(out_root)])
    assert rc == 0

    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0].startswith("Training Z-score: ")
    assert lines[1].startswith("Testing Z-score: ")
    assert lines[2].startswith("p-value: ")

    run_dir = _only_run_dir(out_root)
    record = json.loads((run_dir / "run_record.json").read_text(encoding="utf-8"))
    assert record["block_size"] == 8
    assert record["training_blocks"] == 1000
    assert record["testing_blocks"] == 1000
    assert len(record["run_record_hash"]) == 64
    assert float(lines[0].split(": ")[1]) == pytest.approx(record["training_z"])

    events = [json.loads(x)["event_type"] for x in (run_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()]
    assert events == ["RUN_START", "SPLIT", "RANKING_DONE", "HOLDOUT_DONE", "RUN_END"]


def test_run_reports_dropped_trailing_block(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    data = _write_stream(tmp_path / "data.bin", block_size=16, num_blocks=3000, bias=0.05, extra=b"\x01")
    out_root = tmp_path / "out"
    assert main(["run", "16", str(data), "--output-root", str(out_root)]) == 0
    assert "dropping last block" in capsys.readouterr().err

    run_dir = _only_run_dir(out_root)
    events = [json.loads(x) for x in (run_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()]
    dropped = [e for e in events if e["event_type"] == "BLOCK_DROPPED"]
    assert dropped and dropped[0]["dropped_bytes"] == 1


def test_run_rejects_unaligned_block_size(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    data = _write_stream(tmp_path / "data.bin")
    out_root = tmp_path / "out"
    assert main(["run", "12", str(data), "--output-root", str(out_root)]) == 2
    assert "multiple of 8" in capsys.readouterr().err
    assert not out_root.exists()


def test_run_failure_is_logged(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    data = tmp_path / "one_block.bin"
    data.write_bytes(b"\x00")
    out_root = tmp_path / "out"
    assert main(["run", "8", str(data), "--output-root", str(out_root)]) == 2
    assert "Testing collection is empty" in capsys.readouterr().err

    run_dir = _only_run_dir(out_root)
    events = [json.loads(x) for x in (run_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()]
    assert events[-1]["event_type"] == "RUN_FAILED"
    assert events[-1]["error_type"] == "EmptyInputError"
    assert not (run_dir / "run_record.json").exists()


def test_determinism_smoke(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    data = _write_stream(tmp_path / "data.bin")
    assert main(["test", "determinism_smoke", "8", str(data)]) == 0
    assert capsys.readouterr().out.startswith("DETERMINISM_OK result_hash=")


def test_synth_generate(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    out = tmp_path / "synth" / "stream.bin"
    argv = ["synth", "generate", "--output", str(out), "--block-size", "16", "--num-blocks", "100", "--bias", "0.5", "--seed", "3"]
    assert main(argv) == 0
    assert out.stat().st_size == 200
    first = out.read_bytes()
    assert main(argv) == 0
    assert out.read_bytes() == first
    assert "SYNTH_OK" in capsys.readouterr().out


def test_run_io_failure_is_logged(tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
    data = _write_stream(tmp_path / "data.bin")
    out_root = tmp_path / "out"

    def _deny(path: object) -> str:
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(runner, "sha256_file", _deny)
    assert main(["run", "8", str(data), "--output-root", str(out_root)]) == 2
    assert "I/O failure" in capsys.readouterr().err

    run_dir = _only_run_dir(out_root)
    events = [json.loads(x) for x in (run_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()]
    assert events[-1]["event_type"] == "RUN_FAILED"
    assert events[-1]["error_type"] == "PermissionError"
    assert not (run_dir / "run_record.json").exists()
