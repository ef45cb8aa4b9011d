from __future__ import annotations

import argparse
import sys
from typing import Any

from blockbias.canonical import CanonicalError, load_canonical
from blockbias.config import ConfigError
from blockbias.errors import BlockBiasError
from blockbias.experiments.runner import determinism_smoke_test, generate_synthetic, run_evaluation


def _add_input_args(parser: argparse.ArgumentParser, flags: dict[str, str]) -> None:
    parser.add_argument("block_size", type=int, help="Length of block of data in bits.")
    parser.add_argument("input_file", help="Path to input file.")
    parser.add_argument(flags["FLAG_CONFIG"], dest="config_path", default=None)
    parser.add_argument(flags["FLAG_TOLERANCE"], dest="tolerance", type=float, default=None)


def _build_parser(canonical: dict[str, Any]) -> argparse.ArgumentParser:
    flags = canonical["CLI"]["CANONICAL_FLAGS"]

    p = argparse.ArgumentParser(prog="blockbias")
    p.add_argument("--version", action="version", version=f"%(prog)s {canonical['PROJECT_VERSION']}")
    sp = p.add_subparsers(dest="group", required=True)

    run = sp.add_parser("run", help="Evaluate a file for over-represented blocks.")
    _add_input_args(run, flags)
    run.add_argument(flags["FLAG_OUTPUT_ROOT"], dest="output_root", default=None)
    run.set_defaults(func=run_evaluation)

    synth = sp.add_parser("synth")
    synth_sp = synth.add_subparsers(dest="cmd", required=True)
    synth_gen = synth_sp.add_parser("generate", help="Write a deterministic synthetic stream.")
    synth_gen.add_argument(flags["FLAG_OUTPUT"], dest="output", required=True)
    synth_gen.add_argument(flags["FLAG_BLOCK_SIZE"], dest="block_size", type=int, required=True)
    synth_gen.add_argument(flags["FLAG_NUM_BLOCKS"], dest="num_blocks", type=int, required=True)
    synth_gen.add_argument(flags["FLAG_BIAS"], dest="bias", type=float, default=None)
    synth_gen.add_argument(flags["FLAG_SEED"], dest="seed", type=int, default=None)
    synth_gen.set_defaults(func=generate_synthetic)

    test = sp.add_parser("test")
    test_sp = test.add_subparsers(dest="cmd", required=True)
    det = test_sp.add_parser("determinism_smoke")
    _add_input_args(det, flags)
    det.set_defaults(func=determinism_smoke_test)

    return p


def main(argv: list[str] | None = None) -> int:
    canonical = load_canonical()
    parser = _build_parser(canonical)
    args = parser.parse_args(argv)

    try:
        return int(args.func(args))  # type: ignore[misc]
    except (BlockBiasError, ConfigError, CanonicalError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
