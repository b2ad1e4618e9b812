"""
Ledger Replay CLI
=================

Replays a CSV file of operations and prints the final state of every client
account to stdout. Rejected operations and other diagnostics are logged to
stderr.

Usage:
    ledger-replay transactions.csv
    ledger-replay transactions.csv --sort --skip-malformed
"""

import argparse
import sys

import structlog

from config import configure_logging, get_settings
from csv_io import read_operations, write_snapshot
from errors import RecordDecodeError
from repositories import InMemoryAccountRepository
from services import LedgerService

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger-replay",
        description="Replay a CSV log of operations and print each client's final balances",
    )
    parser.add_argument("path", help="CSV file with type, client, tx, amount columns")
    parser.add_argument("--sort", action="store_true", default=None,
                        help="Order report rows by client identifier")
    parser.add_argument("--skip-malformed", action="store_true", default=None,
                        help="Log and skip undecodable rows instead of aborting the run")
    parser.add_argument("--log-level", type=str, default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Override the configured log level")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.log_level:
        settings = settings.model_copy(update={"log_level": args.log_level})
    configure_logging(settings)

    sort_by_client = settings.sort_output if args.sort is None else args.sort
    skip_malformed = settings.skip_malformed_rows if args.skip_malformed is None else args.skip_malformed

    service = LedgerService(InMemoryAccountRepository())

    try:
        with open(args.path, newline="", encoding="utf-8-sig") as f:
            service.replay(read_operations(f, skip_malformed=skip_malformed))
    except OSError as e:
        logger.error("Could not read input file", path=args.path, error=str(e))
        return 1
    except RecordDecodeError as e:
        logger.error("Aborting replay on malformed row", path=args.path, line=e.line, detail=e.detail)
        return 2

    write_snapshot(service.snapshot(sort_by_client=sort_by_client), sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
