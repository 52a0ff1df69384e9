#!/usr/bin/env python3

import argparse
import logging
from collections.abc import Sequence

from roundup.cli.receipt import cmd_check, cmd_preview, cmd_upload, parse_item_arg, parse_weight_arg
from roundup.runtime import set_log_level


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Receipt round-up investment CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  upload <file>              Upload a receipt, review the allocation, confirm it
  check <file>               Check a receipt file without uploading it
  preview SYMBOL=WEIGHT...   Show how a round-up splits across tickers

Notes:
  Service URL, API key and timeout come from config/service.toml
  (under ROUNDUP_HOME) and the ROUNDUP_SERVICE_URL, ROUNDUP_API_KEY
  and ROUNDUP_TIMEOUT environment variables.
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", default=None, help="Path to service.toml (default: config/service.toml)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # upload command
    upload_parser = subparsers.add_parser("upload", help="Upload and process a receipt")
    upload_parser.add_argument("file", help="Path to receipt image or PDF")
    upload_parser.add_argument("--content-type", default=None, help="MIME type (guessed from the extension)")
    upload_parser.add_argument("--yes", action="store_true", help="Confirm without asking")
    upload_parser.add_argument("--service-url", default=None, help="Receipt functions base URL")
    upload_parser.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds")
    manual_group = upload_parser.add_argument_group("manual entry", "Used when extraction fails or needs correction")
    manual_group.add_argument("--retailer", default=None, help="Retailer / store name")
    manual_group.add_argument("--total", default=None, help="Receipt total amount")
    manual_group.add_argument(
        "--item",
        action="append",
        type=parse_item_arg,
        default=None,
        metavar="NAME:AMOUNT[:BRAND]",
        help="Item row (repeatable)",
    )

    # check command
    check_parser = subparsers.add_parser("check", help="Check a receipt file locally")
    check_parser.add_argument("file", help="Path to receipt image or PDF")
    check_parser.add_argument("--content-type", default=None, help="MIME type (guessed from the extension)")

    # preview command
    preview_parser = subparsers.add_parser("preview", help="Preview a round-up split")
    preview_parser.add_argument("--total", default="1.00", help="Round-up amount to split (default: 1.00)")
    preview_parser.add_argument(
        "weights",
        nargs="+",
        type=parse_weight_arg,
        metavar="SYMBOL=WEIGHT",
        help="Ticker and its relative weight",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        set_log_level(logging.DEBUG)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "upload":
        return cmd_upload(args)
    if args.command == "check":
        return cmd_check(args)
    if args.command == "preview":
        return cmd_preview(args)

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
