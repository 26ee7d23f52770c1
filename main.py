"""Entry point for running iperf tests and summarizing the results."""

from __future__ import annotations

import argparse
import json
import sys

from iperf_report import bootstrap


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="iperf throughput test runner")
    parser.add_argument("--config", help="Path to config.yaml", default="config.yaml")
    parser.add_argument(
        "--server", action="append", default=None, help="Server to test (hostname[:port]); repeatable"
    )
    parser.add_argument("--export", nargs="?", const="", default=None, help="Write stored results to CSV")
    parser.add_argument("--rows", action="store_true", help="Print stored results of the latest run as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    context = bootstrap(args.config, verbose=args.verbose)

    if args.rows:
        print(json.dumps(context.state.load_rows() or [], indent=2))
        return 0

    succeeded = context.run(args.server)
    if args.export is not None:
        context.export(args.export or None)
    return 0 if succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
