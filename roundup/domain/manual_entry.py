"""Manual entry form and its reconciliation into a ParsedReceipt."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from roundup.domain.receipt import CENT, ParsedReceipt, ReceiptItem, Retailer

# Leading numeric prefix, the way a browser's parseFloat reads "15abc" as 15
_NUMBER_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

RETAILER_REQUIRED_MESSAGE = "Retailer is required"
TOTAL_REQUIRED_MESSAGE = "Total amount is required"
TOTAL_NEGATIVE_MESSAGE = "Total amount cannot be negative"


@dataclass(frozen=True)
class ManualItemRow:
    """One editable item row; every field is optional on its own."""

    name: str = ""
    amount: str = ""
    brand: str = ""

    @property
    def is_complete(self) -> bool:
        """Only rows with both a name and an amount are forwarded."""
        return bool(self.name.strip()) and bool(self.amount)


def _blank_rows() -> list[ManualItemRow]:
    return [ManualItemRow()]


@dataclass
class ManualEntryForm:
    """Retailer, total and item rows as typed by the user."""

    retailer: str = ""
    total_amount: str = ""
    items: list[ManualItemRow] = field(default_factory=_blank_rows)


@dataclass(frozen=True)
class ManualEntryResult:
    """Receipt built from the form plus non-blocking notices about it."""

    parsed_receipt: ParsedReceipt
    warnings: tuple[str, ...] = ()


def parse_amount(text: str) -> Decimal | None:
    """Read the numeric prefix of ``text`` as cents; None when there is none."""
    match = _NUMBER_PREFIX.match(text)
    if not match:
        return None
    try:
        return Decimal(match.group(1)).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits to represent in cents
        return None


def validate_form(form: ManualEntryForm) -> str | None:
    """Return the problem that blocks submission, or None."""
    if not form.retailer.strip():
        return RETAILER_REQUIRED_MESSAGE
    if not form.total_amount.strip():
        return TOTAL_REQUIRED_MESSAGE
    total = parse_amount(form.total_amount)
    if total is not None and total < 0:
        return TOTAL_NEGATIVE_MESSAGE
    return None


def _lenient_amount(text: str, label: str, warnings: list[str]) -> Decimal:
    value = parse_amount(text)
    if value is None:
        warnings.append(f"{label}: amount {text!r} is not a number; using 0.00")
        return Decimal("0.00")
    if value < 0:
        warnings.append(f"{label}: amount {text!r} is negative; using 0.00")
        return Decimal("0.00")
    return value


def build_parsed_receipt(form: ManualEntryForm, now: datetime | None = None) -> ManualEntryResult:
    """
    Turn a validated form into a ParsedReceipt.

    Incomplete rows are dropped without complaint. Amounts that do not parse
    fall back to 0.00 and are reported in ``warnings``.

    Raises:
        ValueError: if the form does not pass validate_form().
    """
    problem = validate_form(form)
    if problem is not None:
        raise ValueError(problem)

    warnings: list[str] = []
    total = _lenient_amount(form.total_amount, "Total", warnings)

    items: list[ReceiptItem] = []
    for row in form.items:
        if not row.is_complete:
            continue
        name = row.name.strip()
        items.append(
            ReceiptItem(
                name=name,
                amount=_lenient_amount(row.amount, f"Item {name!r}", warnings),
                brand=row.brand.strip() or None,
            )
        )

    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    parsed = ParsedReceipt(
        retailer=Retailer(name=form.retailer.strip()),
        items=tuple(items),
        total_amount=total,
        timestamp=timestamp,
    )
    return ManualEntryResult(parsed_receipt=parsed, warnings=tuple(warnings))


def form_from_parsed_receipt(parsed: ParsedReceipt) -> ManualEntryForm:
    """Pre-fill the form from an existing receipt for review or correction."""
    rows = [
        ManualItemRow(name=item.name, amount=str(item.amount), brand=item.brand or "")
        for item in parsed.items
    ]
    return ManualEntryForm(
        retailer=parsed.retailer.name,
        total_amount=str(parsed.total_amount),
        items=rows or _blank_rows(),
    )
