"""CLI: sessionize an event table into a new destination table.

  python -m sessionize.tools.run_sessionize --source events.csv --destination out.parquet \
      --id-col user_id --ts-col ts --gap 30min
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema

from common.configs import load_config
from common.logs import setup_logging
from sessionize.config import SessionConfig
from sessionize.errors import SessionizeError
from sessionize.runner import sessionize_table, usage

logger = logging.getLogger("run_sessionize")

# column selectors stay strings even when they look like numbers or booleans
COLUMN_KEYS = ("identifier_field", "timestamp_field", "tie_break")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sessionize events by identifier and inactivity gap")
    parser.add_argument("--source", help="input table (csv, parquet or jsonl)")
    parser.add_argument("--destination", help="output table, must not exist")
    parser.add_argument("--id-col", dest="identifier_field")
    parser.add_argument("--ts-col", dest="timestamp_field")
    parser.add_argument("--gap", dest="gap_threshold", help='e.g. "30min", "00:10:00" or 600')
    parser.add_argument("--tie-break", dest="tie_break", action="append", help="secondary sort column, repeatable")
    parser.add_argument("--workers", type=int)
    parser.add_argument("--no-parse-dates", dest="parse_dates", action="store_false", default=None)
    parser.add_argument("--summary", dest="summary_path", help="optional per-session summary table")
    parser.add_argument("--profile", help="config profile under configs/sessionize/profiles")
    parser.add_argument("--config", action="append", default=[], help="extra YAML override file, repeatable")
    parser.add_argument("--check", action="store_true", help="verify session invariants before writing")
    parser.add_argument("--usage", action="store_true", help="print a description of the tool and exit")
    parser.add_argument("--log-level")
    parser.add_argument("--log-file")
    return parser


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    section: Dict[str, Any] = {}
    for key in ("identifier_field", "timestamp_field", "gap_threshold", "tie_break", "workers", "parse_dates"):
        value = getattr(args, key)
        if value is not None:
            section[key] = value
    overrides: Dict[str, Any] = {"sessionize": section}
    logging_section = {k: v for k, v in (("level", args.log_level), ("file", args.log_file)) if v}
    if logging_section:
        overrides["logging"] = logging_section
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.usage:
        print(usage())
        return 0
    if not args.source or not args.destination:
        parser.error("--source and --destination are required")

    try:
        cfg = load_config(
            profile=args.profile,
            overrides_paths=[Path(p) for p in args.config],
            cli_overrides=_cli_overrides(args),
            literal_keys=COLUMN_KEYS,
        )
    except jsonschema.ValidationError as exc:
        logger.error("Invalid config: %s", exc.message)
        return 2
    log_cfg = cfg.section("logging")
    setup_logging(log_cfg.get("level", "INFO"), log_cfg.get("file"))
    logger.info("Config fingerprint %s (schema %s)", cfg.fingerprint, cfg.schema_version)

    section = cfg.section("sessionize")
    try:
        session_cfg = SessionConfig.from_mapping(section)
        sessionize_table(
            args.source,
            args.destination,
            session_cfg.identifier_field,
            session_cfg.timestamp_field,
            session_cfg.gap_threshold,
            tie_break=session_cfg.tie_break,
            parse_dates=section.get("parse_dates", True),
            summary_path=args.summary_path,
            workers=session_cfg.workers,
            check=args.check,
            config=session_cfg,
        )
    except SessionizeError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
