"""Format receipt sessions and confirmations as plain text."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from roundup.domain.allocation import SplitShare
from roundup.domain.receipt import Allocation, ConfirmationReceipt, ParsedReceipt
from roundup.domain.session import PROGRESS_STEPS, ReceiptUploadSession, progress_index

RULE = "=" * 60

_STEP_MESSAGES = {
    "uploading": "Uploading receipt...",
    "extracting": "Extracting items with AI...",
    "analyzing": "Analyzing brands & calculating allocation...",
}


def _money(value: Decimal) -> str:
    return f"${value:.2f}"


def _format_aligned(rows: list[tuple[str, str]], indent: str = "  ") -> list[str]:
    """Left column padded to the widest label, right column right-aligned."""
    if not rows:
        return []
    label_width = max(len(label) for label, _ in rows)
    value_width = max(len(value) for _, value in rows)
    return [f"{indent}{label.ljust(label_width)}  {value.rjust(value_width)}" for label, value in rows]


def format_progress(session: ReceiptUploadSession) -> str:
    """One-line progress indicator, e.g. ``[x] Upload  [>] Extract  [ ] Analyze  [ ] Complete``."""
    current = progress_index(session.step)
    marks = []
    for index, name in enumerate(PROGRESS_STEPS):
        if current < 0 or index > current:
            mark = " "
        elif index == current:
            mark = ">"
        else:
            mark = "x"
        marks.append(f"[{mark}] {name}")
    message = _STEP_MESSAGES.get(session.step)
    line = "  ".join(marks)
    return f"{line}  {message}" if message else line


def format_items(parsed: ParsedReceipt) -> list[str]:
    rows = []
    for item in parsed.items:
        label = item.name
        if item.brand:
            label += f" ({item.brand}"
            label += f", {item.brand_symbol})" if item.brand_symbol else ")"
        rows.append((label, _money(item.amount)))
    return _format_aligned(rows)


def format_allocations(allocations: Sequence[Allocation]) -> list[str]:
    lines = []
    for allocation in allocations:
        lines.append(
            f"  {allocation.stock_symbol:<6} {allocation.stock_name[:28]:<28} "
            f"{_money(allocation.amount):>8} {allocation.percentage:>5}%  [{allocation.confidence_tier}]"
        )
        if allocation.reason:
            lines.append(f"         {allocation.reason}")
    return lines


def format_session_summary(session: ReceiptUploadSession) -> str:
    """Summary shown once a session is completed (or under review)."""
    parsed = session.parsed_data
    if parsed is None:
        return "No receipt data yet."

    header = "TRANSACTION SUMMARY"
    if session.ai_provider:
        header += f" [{session.ai_provider.upper()}]"

    retailer = parsed.retailer.name
    if parsed.retailer.stock_symbol:
        retailer += f" ({parsed.retailer.stock_symbol})"

    rows = [
        ("Retailer", retailer),
        ("Total Amount", _money(parsed.total_amount)),
    ]
    # Item amounts exclude tax and fees, so they rarely equal the total
    if parsed.items and parsed.item_total != parsed.total_amount:
        rows.append(("Items Subtotal", _money(parsed.item_total)))
    rows.append(("Round-Up Investment", _money(session.total_round_up)))

    lines = [RULE, header, RULE]
    lines.extend(_format_aligned(rows, indent=""))

    if parsed.items:
        lines.append("")
        lines.append(f"Items Purchased ({len(parsed.items)}):")
        lines.extend(format_items(parsed))

    lines.append("")
    if session.allocations:
        lines.append("Investment Allocation:")
        lines.extend(format_allocations(session.allocations))
    else:
        lines.append("No stocks identified; the round-up will be confirmed without a ticker split.")

    if session.warnings:
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  - {warning}" for warning in session.warnings)

    lines.append(RULE)
    return "\n".join(lines)


def format_confirmation(confirmation: ConfirmationReceipt) -> str:
    symbols = ", ".join(allocation.stock_symbol for allocation in confirmation.allocations) or "no tickers"
    rows = [
        ("Transaction", str(confirmation.transaction_id)),
        ("Merchant", confirmation.merchant or "Unknown Receipt"),
        ("Amount", _money(confirmation.amount)),
        ("Round-Up", _money(confirmation.round_up)),
        ("Fee", _money(confirmation.fee)),
        ("Net Investment", _money(confirmation.net_investment)),
        ("Allocated To", symbols),
    ]
    return "\n".join(["Receipt confirmed:", *_format_aligned(rows)])


def format_split(shares: Sequence[SplitShare], total_round_up: Decimal) -> str:
    rows = [(share.key, f"{_money(share.amount)} ({share.percentage}%)") for share in shares]
    return "\n".join([f"Split of {_money(total_round_up)}:", *_format_aligned(rows)])
