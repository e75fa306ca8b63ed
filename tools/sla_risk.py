#!/usr/bin/env python3
"""List the open tickets most at risk of breaching their SLA."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = BASE_DIR / "config" / "config.yaml"
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from helpdesk_engine.config import ConfigError  # type: ignore  # pylint: disable=import-error
from helpdesk_engine.ingestion import IngestionError  # type: ignore  # pylint: disable=import-error
from helpdesk_engine.workflow import SlaOptions, sla_risk_report  # type: ignore  # pylint: disable=import-error


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Train on a ticket CSV and rank open tickets by SLA breach risk.",
    )
    parser.add_argument("--csv", required=True, help="Path to the ticket CSV export.")
    parser.add_argument(
        "--config",
        help=(
            "Path to configuration YAML file. Defaults to "
            f"{DEFAULT_CONFIG_PATH} or config/config.yaml if present."
        ),
    )
    parser.add_argument(
        "--now",
        help="ISO8601 timestamp to score against instead of the current time.",
    )
    parser.add_argument(
        "--console-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the console logging level.",
    )
    return parser


def main(argv: Iterable[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    options = SlaOptions(
        config_path=args.config,
        csv_path=args.csv,
        now=args.now,
        console_level=args.console_level,
    )
    try:
        sla_risk_report(options, base_dir=BASE_DIR)
    except (ConfigError, IngestionError, ValueError) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main()
