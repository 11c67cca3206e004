"""CLI entry-point for the security sentinel.

Usage examples
--------------
# Replay a captured signal file with the default config:
python -m src.sentinel --signals data/signals.jsonl

# Custom config and output directory, verbose:
python -m src.sentinel --signals data/signals.jsonl --config-dir config --out-dir out --log-level DEBUG
"""

from __future__ import annotations

import argparse

from src.sentinel.pipeline import run_pipeline
from src.shared.logger import setup_logging


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="sentinel",
        description="Security sentinel: replay operational signals, raise alerts, report",
    )
    p.add_argument(
        "--signals",
        default="data/signals.jsonl",
        help="JSONL file with one signal record per line. Default: data/signals.jsonl",
    )
    p.add_argument(
        "--out-dir",
        default="out",
        help="Output directory. Default: out/",
    )
    p.add_argument(
        "--config-dir",
        default="config",
        help="Directory with detector.yaml. Default: config/",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. Default: INFO",
    )
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    result = run_pipeline(
        input_path=args.signals,
        out_dir=args.out_dir,
        config_dir=args.config_dir,
    )
    critical = sum(1 for a in result.alerts if a.rollback_suggested)
    print(
        f"Replayed {result.records} signals -> {len(result.alerts)} alerts "
        f"({critical} suggesting rollback). Outputs in {args.out_dir}/"
    )


if __name__ == "__main__":
    main()
