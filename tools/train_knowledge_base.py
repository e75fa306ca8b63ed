#!/usr/bin/env python3
"""Train the helpdesk knowledge base from a CSV export and print a summary."""
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
from helpdesk_engine.workflow import TrainOptions, train_knowledge_base  # type: ignore  # pylint: disable=import-error


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ingest a ticket CSV, train the similarity model and report accuracy and root causes.",
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
        "--report",
        action="store_true",
        help="Write HTML, JSON and SLA risk CSV reports for the trained snapshot.",
    )
    parser.add_argument(
        "--output-directory",
        help="Directory for reports. Overrides reporting.output_directory.",
    )
    parser.add_argument(
        "--show-console-log",
        action="store_true",
        help="Show detailed log output instead of the default progress display.",
    )
    parser.add_argument(
        "--simple-console",
        action="store_true",
        help="Use a simple console log format instead of Rich formatting.",
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
    options = TrainOptions(
        config_path=args.config,
        csv_path=args.csv,
        output_directory=args.output_directory,
        write_reports=args.report,
        simple_console=args.simple_console,
        console_level=args.console_level,
        show_console_log=args.show_console_log,
    )
    try:
        train_knowledge_base(options, base_dir=BASE_DIR)
    except (ConfigError, IngestionError) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main()
