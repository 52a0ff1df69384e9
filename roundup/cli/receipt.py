"""Receipt command handlers used by the unified CLI."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path

from roundup.application.receipts import ReceiptWorkflow
from roundup.domain.allocation import split_round_up
from roundup.domain.manual_entry import ManualItemRow
from roundup.domain.receipt_file import ReceiptFile, check_receipt_file, guess_content_type
from roundup.receipt.formatter import format_confirmation, format_progress, format_session_summary, format_split
from roundup.runtime import (
    ReceiptEvents,
    ReceiptServiceClient,
    ServiceSettings,
    SettingsError,
    get_logger,
    load_service_settings,
)

logger = get_logger(__name__)

InputFn = Callable[[str], str]


def _build_client(settings: ServiceSettings) -> ReceiptServiceClient:
    return ReceiptServiceClient.from_settings(settings)


def _resolve_settings(args: argparse.Namespace) -> ServiceSettings:
    settings = load_service_settings(getattr(args, "config", None))
    if getattr(args, "service_url", None):
        settings = replace(settings, base_url=args.service_url)
    if getattr(args, "timeout", None) is not None:
        if args.timeout <= 0:
            raise SettingsError(f"Timeout must be positive, got {args.timeout}")
        settings = replace(settings, timeout=args.timeout)
    return settings


def parse_item_arg(text: str) -> ManualItemRow:
    """Parse ``NAME:AMOUNT[:BRAND]`` from the command line."""
    parts = text.split(":")
    if len(parts) < 2 or len(parts) > 3:
        raise argparse.ArgumentTypeError(f"Expected NAME:AMOUNT[:BRAND], got {text!r}")
    name, amount = parts[0], parts[1]
    brand = parts[2] if len(parts) == 3 else ""
    return ManualItemRow(name=name, amount=amount, brand=brand)


def parse_weight_arg(text: str) -> tuple[str, Decimal]:
    """Parse ``SYMBOL=WEIGHT`` for the preview command."""
    symbol, sep, raw_weight = text.partition("=")
    if not sep or not symbol:
        raise argparse.ArgumentTypeError(f"Expected SYMBOL=WEIGHT, got {text!r}")
    try:
        weight = Decimal(raw_weight)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Invalid weight in {text!r}") from exc
    if not weight.is_finite() or weight < 0:
        raise argparse.ArgumentTypeError(f"Weight must be a non-negative number in {text!r}")
    return symbol.upper(), weight


def _has_manual_flags(args: argparse.Namespace) -> bool:
    return bool(args.retailer or args.total or args.item)


def _apply_manual_flags(workflow: ReceiptWorkflow, args: argparse.Namespace) -> None:
    workflow.update_manual_form(retailer=args.retailer, total_amount=args.total)
    if args.item:
        # Items given on the command line replace whatever extraction found
        for index in range(len(workflow.session.manual_form.items) - 1, 0, -1):
            workflow.remove_manual_item(index)
        first, *rest = args.item
        workflow.update_manual_item(0, name=first.name, amount=first.amount, brand=first.brand)
        for row in rest:
            workflow.add_manual_item(row.name, row.amount, row.brand)


def _prompt_manual_form(workflow: ReceiptWorkflow, input_fn: InputFn) -> None:
    """Ask for retailer, total and items; blank answers keep the current value."""
    form = workflow.session.manual_form
    retailer = input_fn(f"Retailer / store name [{form.retailer}]: ").strip()
    total = input_fn(f"Total amount [{form.total_amount}]: ").strip()
    workflow.update_manual_form(retailer=retailer or None, total_amount=total or None)

    print("Items (optional, blank name to finish):")
    while True:
        name = input_fn("  Item name: ").strip()
        if not name:
            break
        amount = input_fn("  Amount: ").strip()
        brand = input_fn("  Brand: ").strip()
        workflow.add_manual_item(name, amount, brand)


def _confirm_prompt(input_fn: InputFn) -> bool:
    response = input_fn("Confirm and invest the round-up? [y/N] ").strip().lower()
    return response == "y"


async def run_upload(
    args: argparse.Namespace,
    settings: ServiceSettings,
    *,
    interactive: bool,
    input_fn: InputFn = input,
) -> int:
    """Drive one receipt through the workflow and report the outcome."""
    receipt_path = Path(args.file)
    if not receipt_path.is_file():
        print(f"Error: Receipt file not found: {receipt_path}")
        return 1

    receipt_file = ReceiptFile(
        filename=receipt_path.name,
        content_type=args.content_type or guess_content_type(receipt_path.name),
        content=receipt_path.read_bytes(),
    )
    events = ReceiptEvents()

    async with _build_client(settings) as client:
        workflow = ReceiptWorkflow(client, events)
        print(f"Uploading {receipt_file.filename} to {settings.base_url}")
        session = await workflow.select_file(receipt_file)

        if session.step == "idle":
            print(f"Error: {session.error}")
            return 1

        if session.step == "error":
            print(f"Error: {session.error}")
            if not (_has_manual_flags(args) or interactive):
                return 1
            workflow.enter_manually()
            print("Enter the receipt details manually.")
        elif session.step == "completed" and _has_manual_flags(args):
            workflow.edit()
        elif session.step == "manual-entry":
            if session.error:
                print(f"Error: {session.error}")
                print("Enter the receipt details manually.")
            else:
                print("No stocks were identified. Review the receipt details.")

        if workflow.step == "manual-entry":
            if _has_manual_flags(args):
                _apply_manual_flags(workflow, args)
            elif interactive:
                _prompt_manual_form(workflow, input_fn)
            else:
                print("Provide --retailer and --total (and optionally --item) to continue.")
                return 1

            session = await workflow.submit_manual_entry()
            if session.step == "manual-entry":
                print(f"Error: {session.error}")
                return 1

        session = workflow.session
        print(format_progress(session))
        print(format_session_summary(session))

        if not args.yes:
            if not interactive:
                print(f"Receipt {session.receipt_id} was not confirmed (pass --yes to confirm).")
                return 0
            if not _confirm_prompt(input_fn):
                logger.info("Confirmation declined by user")
                print("Not confirmed.")
                return 0

        confirmation = await workflow.confirm()
        if confirmation is None:
            print(f"Confirmation failed: {workflow.session.error}")
            return 1

    print(format_confirmation(confirmation))
    return 0


def cmd_upload(args: argparse.Namespace) -> int:
    """Upload a receipt, review the allocation, and confirm it."""
    try:
        settings = _resolve_settings(args)
    except SettingsError as exc:
        print(f"Error: {exc}")
        return 1
    return asyncio.run(run_upload(args, settings, interactive=sys.stdin.isatty()))


def cmd_check(args: argparse.Namespace) -> int:
    """Run the local file checks without uploading."""
    receipt_path = Path(args.file)
    if not receipt_path.is_file():
        print(f"Error: Receipt file not found: {receipt_path}")
        return 1

    content_type = args.content_type or guess_content_type(receipt_path.name)
    size = receipt_path.stat().st_size
    problem = check_receipt_file(content_type, size)
    if problem:
        print(f"{receipt_path.name}: {problem}")
        return 1
    print(f"{receipt_path.name}: OK ({content_type}, {size} bytes)")
    return 0


def cmd_preview(args: argparse.Namespace) -> int:
    """Show how a round-up would be split across weighted tickers."""
    try:
        total = Decimal(args.total)
    except InvalidOperation:
        print(f"Error: Invalid total {args.total!r}")
        return 1
    if not total.is_finite() or total < 0:
        print(f"Error: Total must be a non-negative amount, got {args.total!r}")
        return 1

    shares = split_round_up(args.weights, total)
    print(format_split(shares, total))
    return 0
