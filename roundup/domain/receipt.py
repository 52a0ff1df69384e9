"""Data models for receipt extraction, allocation and confirmation.

Money is carried as Decimal quantized to cents. Wire payloads use the
service's camelCase keys; ``from_payload``/``to_payload`` translate.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal

CENT = Decimal("0.01")
DEFAULT_ROUND_UP = Decimal("1.00")

ConfidenceTier = Literal["High", "Medium", "Low"]


class MalformedPayloadError(ValueError):
    """Raised when a service payload is missing fields or has the wrong shape."""


def to_money(value: object) -> Decimal:
    """Convert a wire number (or numeric string) to a cent-quantized Decimal."""
    if isinstance(value, bool) or value is None:
        raise MalformedPayloadError(f"Expected a monetary amount, got {value!r}")
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            raise MalformedPayloadError(f"Expected a finite monetary amount, got {value!r}")
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        # Non-numeric strings, or values too large to carry cents
        raise MalformedPayloadError(f"Expected a monetary amount, got {value!r}") from exc


def _to_decimal(value: object, field_name: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise MalformedPayloadError(f"{field_name}: expected a number, got {value!r}")
    try:
        number = Decimal(str(value))
    except InvalidOperation as exc:
        raise MalformedPayloadError(f"{field_name}: expected a number, got {value!r}") from exc
    if not number.is_finite():
        raise MalformedPayloadError(f"{field_name}: expected a finite number, got {value!r}")
    return number


def _to_confidence(value: object, field_name: str) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise MalformedPayloadError(f"{field_name}: expected a confidence score, got {value!r}")
    try:
        score = float(value)
    except ValueError as exc:
        raise MalformedPayloadError(f"{field_name}: expected a confidence score, got {value!r}") from exc
    if score != score:
        raise MalformedPayloadError(f"{field_name}: confidence is NaN")
    return score


def _require_mapping(value: object, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise MalformedPayloadError(f"{what}: expected an object, got {type(value).__name__}")
    return value


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _money_out(value: Decimal) -> float:
    # JSON has no decimal type; the service stores numbers with two places
    return float(value)


def confidence_tier(confidence: float) -> ConfidenceTier:
    """Display tier for a 0-1 confidence; purely presentational."""
    if confidence >= 0.9:
        return "High"
    if confidence >= 0.7:
        return "Medium"
    return "Low"


@dataclass(frozen=True)
class Retailer:
    """Store the receipt came from, plus its ticker when the service mapped one."""

    name: str
    stock_symbol: str | None = None

    @classmethod
    def from_payload(cls, payload: object) -> Retailer:
        data = _require_mapping(payload, "retailer")
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise MalformedPayloadError("retailer.name: expected a non-empty string")
        return cls(name=name, stock_symbol=_optional_str(data.get("stockSymbol")))

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name, "stockSymbol": self.stock_symbol}


@dataclass(frozen=True)
class ReceiptItem:
    """A single line item on a receipt."""

    name: str
    amount: Decimal
    brand: str | None = None
    brand_symbol: str | None = None
    brand_confidence: float = 0.0

    @classmethod
    def from_payload(cls, payload: object) -> ReceiptItem:
        data = _require_mapping(payload, "item")
        name = data.get("name")
        if not isinstance(name, str):
            raise MalformedPayloadError("item.name: expected a string")
        return cls(
            name=name,
            amount=to_money(data.get("amount", 0)),
            brand=_optional_str(data.get("brand")),
            brand_symbol=_optional_str(data.get("brandSymbol")),
            brand_confidence=_to_confidence(data.get("brandConfidence"), "item.brandConfidence"),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "brand": self.brand,
            "amount": _money_out(self.amount),
            "brandSymbol": self.brand_symbol,
            "brandConfidence": self.brand_confidence,
        }


@dataclass(frozen=True)
class ParsedReceipt:
    """Retailer, items and total as extracted (or typed in manually)."""

    retailer: Retailer
    items: tuple[ReceiptItem, ...] = ()
    # Receipts may carry tax/fees that are not itemized, so this is not
    # required to equal the item sum.
    total_amount: Decimal = Decimal("0.00")
    timestamp: str = ""

    @property
    def item_total(self) -> Decimal:
        return sum((item.amount for item in self.items), Decimal("0.00"))

    @classmethod
    def from_payload(cls, payload: object) -> ParsedReceipt:
        data = _require_mapping(payload, "parsed_data")
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise MalformedPayloadError("parsed_data.items: expected a list")
        total = to_money(data.get("totalAmount", 0))
        if total < 0:
            raise MalformedPayloadError(f"parsed_data.totalAmount: must be non-negative, got {total}")
        return cls(
            retailer=Retailer.from_payload(data.get("retailer")),
            items=tuple(ReceiptItem.from_payload(item) for item in raw_items),
            total_amount=total,
            timestamp=str(data.get("timestamp") or ""),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "retailer": self.retailer.to_payload(),
            "items": [item.to_payload() for item in self.items],
            "totalAmount": _money_out(self.total_amount),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class Allocation:
    """Portion of the round-up assigned to one tradable instrument."""

    stock_symbol: str
    stock_name: str
    amount: Decimal
    percentage: Decimal
    reason: str = ""
    confidence: float = 0.0

    @property
    def confidence_tier(self) -> ConfidenceTier:
        return confidence_tier(self.confidence)

    @classmethod
    def from_payload(cls, payload: object) -> Allocation:
        data = _require_mapping(payload, "allocation")
        symbol = data.get("stockSymbol")
        if not isinstance(symbol, str) or not symbol:
            raise MalformedPayloadError("allocation.stockSymbol: expected a non-empty string")
        return cls(
            stock_symbol=symbol,
            stock_name=str(data.get("stockName") or symbol),
            amount=to_money(data.get("amount")),
            percentage=_to_decimal(data.get("percentage", 0), "allocation.percentage"),
            reason=str(data.get("reason") or ""),
            confidence=_to_confidence(data.get("confidence"), "allocation.confidence"),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "stockSymbol": self.stock_symbol,
            "stockName": self.stock_name,
            "amount": _money_out(self.amount),
            "percentage": float(self.percentage),
            "reason": self.reason,
            "confidence": self.confidence,
        }


def allocations_from_payload(payload: object) -> tuple[list[Allocation], Decimal]:
    """Parse an ``allocation_data`` object into (allocations, totalRoundUp)."""
    data = _require_mapping(payload, "allocation_data")
    raw = data.get("allocations") or []
    if not isinstance(raw, list):
        raise MalformedPayloadError("allocation_data.allocations: expected a list")
    total = to_money(data.get("totalRoundUp", DEFAULT_ROUND_UP))
    if total < 0:
        raise MalformedPayloadError(f"allocation_data.totalRoundUp: must be non-negative, got {total}")
    return [Allocation.from_payload(item) for item in raw], total


def allocations_to_payload(allocations: list[Allocation], total_round_up: Decimal) -> dict[str, Any]:
    return {
        "allocations": [allocation.to_payload() for allocation in allocations],
        "totalRoundUp": _money_out(total_round_up),
    }


@dataclass(frozen=True)
class UploadResult:
    """What the upload function returns once the file is stored."""

    receipt_id: int
    filename: str = ""
    storage_path: str = ""
    file_type: str = ""
    file_size_bytes: int | None = None

    @classmethod
    def from_payload(cls, payload: object) -> UploadResult:
        data = _require_mapping(payload, "upload response")
        receipt_id = data.get("receipt_id")
        if isinstance(receipt_id, bool) or not isinstance(receipt_id, int):
            raise MalformedPayloadError("upload response: missing receipt_id")
        size = data.get("file_size_bytes")
        return cls(
            receipt_id=receipt_id,
            filename=str(data.get("filename") or ""),
            storage_path=str(data.get("storage_path") or ""),
            file_type=str(data.get("file_type") or ""),
            file_size_bytes=size if isinstance(size, int) else None,
        )


@dataclass(frozen=True)
class ProcessResult:
    """Extraction + allocation output for one uploaded receipt."""

    receipt_id: int
    parsed_data: ParsedReceipt
    allocations: list[Allocation] = field(default_factory=list)
    total_round_up: Decimal = DEFAULT_ROUND_UP
    ai_provider: str = ""
    status: str = ""
    processing_time_ms: int | None = None

    @classmethod
    def from_payload(cls, payload: object, receipt_id: int) -> ProcessResult:
        data = _require_mapping(payload, "process response")
        if "parsed_data" not in data or "allocation_data" not in data:
            raise MalformedPayloadError("process response: missing parsed_data or allocation_data")
        allocations, total = allocations_from_payload(data["allocation_data"])
        elapsed = data.get("processing_time_ms")
        returned_id = data.get("receipt_id")
        return cls(
            receipt_id=returned_id if isinstance(returned_id, int) and not isinstance(returned_id, bool) else receipt_id,
            parsed_data=ParsedReceipt.from_payload(data["parsed_data"]),
            allocations=allocations,
            total_round_up=total,
            ai_provider=str(data.get("ai_provider") or ""),
            status=str(data.get("status") or ""),
            processing_time_ms=elapsed if isinstance(elapsed, int) else None,
        )


@dataclass(frozen=True)
class ConfirmOverride:
    """Corrected data sent along with a confirmation."""

    parsed_data: ParsedReceipt
    allocations: list[Allocation]
    total_round_up: Decimal

    def to_payload(self) -> dict[str, Any]:
        return {
            "parsed_data": self.parsed_data.to_payload(),
            "allocation_data": allocations_to_payload(self.allocations, self.total_round_up),
        }


@dataclass(frozen=True)
class ConfirmationReceipt:
    """Persisted transaction summary returned by the confirm function."""

    transaction_id: int
    receipt_id: int
    merchant: str = ""
    amount: Decimal = Decimal("0.00")
    round_up: Decimal = Decimal("0.00")
    fee: Decimal = Decimal("0.00")
    net_investment: Decimal = Decimal("0.00")
    allocations: list[Allocation] = field(default_factory=list)
    status: str = ""

    @classmethod
    def from_payload(cls, payload: object, receipt_id: int) -> ConfirmationReceipt:
        data = _require_mapping(payload, "confirm response")
        transaction_id = data.get("transaction_id")
        if isinstance(transaction_id, bool) or not isinstance(transaction_id, int):
            raise MalformedPayloadError("confirm response: missing transaction_id")
        raw_allocations = data.get("allocations") or []
        if not isinstance(raw_allocations, list):
            raise MalformedPayloadError("confirm response: allocations must be a list")
        return cls(
            transaction_id=transaction_id,
            receipt_id=receipt_id,
            merchant=str(data.get("merchant") or ""),
            amount=to_money(data.get("amount", 0)),
            round_up=to_money(data.get("round_up", 0)),
            fee=to_money(data.get("fee", 0)),
            net_investment=to_money(data.get("net_investment", 0)),
            allocations=[Allocation.from_payload(item) for item in raw_allocations],
            status=str(data.get("status") or ""),
        )
