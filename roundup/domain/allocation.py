"""Pure helpers for checking (and previewing) how a round-up is split."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from roundup.domain.receipt import CENT, Allocation, ParsedReceipt

# Sum of allocations may differ from the pool by at most one minor unit
SUM_TOLERANCE = CENT
# Service reports percentages with one decimal place
PERCENTAGE_TOLERANCE = Decimal("0.1")
PERCENT_PLACES = Decimal("0.1")


def allocation_sum(allocations: Sequence[Allocation]) -> Decimal:
    return sum((allocation.amount for allocation in allocations), Decimal("0.00"))


def allocation_sum_matches(allocations: Sequence[Allocation], total_round_up: Decimal) -> bool:
    """True when the allocated amounts add up to the pool within one cent."""
    return abs(allocation_sum(allocations) - total_round_up) <= SUM_TOLERANCE


def expected_percentage(amount: Decimal, total_round_up: Decimal) -> Decimal:
    if total_round_up == 0:
        return Decimal("0")
    return amount / total_round_up * 100


def percentage_matches(allocation: Allocation, total_round_up: Decimal) -> bool:
    """Check the stated percentage against amount / total.

    Amounts are rounded to cents before the percentage is derived, so the
    tolerance grows by the share one cent represents of the pool.
    """
    if total_round_up == 0:
        return allocation.percentage == 0
    cent_share = CENT / total_round_up * 100
    drift = abs(expected_percentage(allocation.amount, total_round_up) - allocation.percentage)
    return drift <= PERCENTAGE_TOLERANCE + cent_share


def validate_allocation_set(allocations: Sequence[Allocation], total_round_up: Decimal) -> list[str]:
    """List every inconsistency in a service-provided allocation set.

    An empty result means the set is internally consistent. Nothing here
    changes the amounts; callers display what the service returned.
    """
    problems: list[str] = []
    if total_round_up < 0:
        problems.append(f"Round-up total is negative: {total_round_up}")
    if not allocations:
        return problems

    if not allocation_sum_matches(allocations, total_round_up):
        problems.append(
            f"Allocations add up to {allocation_sum(allocations)} but the round-up is {total_round_up}"
        )
    # All-zero weights: 0% stated, amounts raised to the one-cent minimum
    check_percentages = any(allocation.percentage != 0 for allocation in allocations)
    for allocation in allocations:
        if allocation.amount < 0:
            problems.append(f"{allocation.stock_symbol}: negative amount {allocation.amount}")
        if not 0.0 <= allocation.confidence <= 1.0:
            problems.append(f"{allocation.stock_symbol}: confidence {allocation.confidence} outside 0-1")
        if check_percentages and not percentage_matches(allocation, total_round_up):
            problems.append(
                f"{allocation.stock_symbol}: {allocation.percentage}% does not match "
                f"{allocation.amount} of {total_round_up}"
            )
    return problems


def validate_receipt_items(parsed: ParsedReceipt) -> list[str]:
    """List extracted items whose amount or brand confidence is out of range."""
    problems: list[str] = []
    for item in parsed.items:
        if item.amount < 0:
            problems.append(f"Item {item.name!r}: negative amount {item.amount}")
        if not 0.0 <= item.brand_confidence <= 1.0:
            problems.append(f"Item {item.name!r}: brand confidence {item.brand_confidence} outside 0-1")
    return problems


@dataclass(frozen=True)
class SplitShare:
    """One share of a previewed split."""

    key: str
    amount: Decimal
    percentage: Decimal


def split_round_up(weights: Sequence[tuple[str, Decimal]], total_round_up: Decimal) -> list[SplitShare]:
    """
    Split a round-up pool proportionally to weights.

    Each share is rounded to cents; the last share takes whatever remains so
    the shares add up to the pool. No share goes below one cent, so a pool
    too small for the number of shares comes out slightly over.

    Args:
        weights: (key, weight) pairs in display order; weights must be >= 0.
        total_round_up: Pool to distribute.

    Returns:
        One SplitShare per weight, in the same order.
    """
    if any(weight < 0 for _, weight in weights):
        raise ValueError("Weights must be non-negative")
    total_weight = sum((weight for _, weight in weights), Decimal("0"))

    shares: list[SplitShare] = []
    allocated = Decimal("0.00")
    for index, (key, weight) in enumerate(weights):
        pct = weight / total_weight * 100 if total_weight > 0 else Decimal("0")
        if index == len(weights) - 1:
            amount = (total_round_up - allocated).quantize(CENT, rounding=ROUND_HALF_UP)
        else:
            amount = (pct / 100 * total_round_up).quantize(CENT, rounding=ROUND_HALF_UP)
        amount = max(CENT, amount)
        allocated += amount
        shares.append(
            SplitShare(
                key=key,
                amount=amount,
                percentage=pct.quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP),
            )
        )
    return shares
