"""Workflow tests driven through an in-memory receipt service."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from roundup.application.receipts import (
    CONFIRM_FAILED_MESSAGE,
    EXTRACTION_FAILED_MESSAGE,
    UPLOAD_FAILED_MESSAGE,
    ReceiptWorkflow,
)
from roundup.application.receipts.workflow import NOT_UPLOADED_MESSAGE
from roundup.domain.manual_entry import RETAILER_REQUIRED_MESSAGE, ManualItemRow
from roundup.domain.receipt import (
    ConfirmationReceipt,
    ConfirmOverride,
    MalformedPayloadError,
    ParsedReceipt,
    ProcessResult,
    UploadResult,
)
from roundup.domain.receipt_file import INVALID_TYPE_MESSAGE, ReceiptFile
from roundup.domain.session import InvalidTransitionError, ReceiptUploadSession
from roundup.runtime.events import ReceiptEvents
from roundup.runtime.receipt_service import ReceiptServiceError, ReceiptServiceTimeout

_NOW = datetime(2026, 3, 14, 12, 30, tzinfo=timezone.utc)


def _process_result(
    receipt_id: int = 42,
    allocations: list[dict] | None = None,
    total: float = 1.0,
    items: list[dict] | None = None,
) -> ProcessResult:
    if items is None:
        items = [{"name": "Air Max 90", "brand": "Nike", "amount": 129.99, "brandSymbol": "NKE"}]
    if allocations is None:
        allocations = [
            {
                "stockSymbol": "FL",
                "stockName": "Foot Locker Inc.",
                "amount": 0.6,
                "percentage": 60,
                "reason": "Retailer",
                "confidence": 0.9,
            },
            {
                "stockSymbol": "NKE",
                "stockName": "Nike Inc.",
                "amount": 0.4,
                "percentage": 40,
                "reason": "Brand of Air Max 90",
                "confidence": 0.95,
            },
        ]
    payload = {
        "receipt_id": receipt_id,
        "parsed_data": {
            "retailer": {"name": "Foot Locker", "stockSymbol": "FL"},
            "items": items,
            "totalAmount": 139.39,
            "timestamp": "2026-03-14T12:00:00Z",
        },
        "allocation_data": {"allocations": allocations, "totalRoundUp": total},
        "ai_provider": "openai",
    }
    return ProcessResult.from_payload(payload, receipt_id)


def _confirmation(receipt_id: int = 42) -> ConfirmationReceipt:
    return ConfirmationReceipt(transaction_id=900, receipt_id=receipt_id, merchant="Foot Locker")


def _jpeg(size: int = 2 * 1024 * 1024) -> ReceiptFile:
    return ReceiptFile(filename="receipt.jpg", content_type="image/jpeg", content=b"\0" * size)


def _outcome(value):
    if isinstance(value, Exception):
        raise value
    return value


class FakeReceiptService:
    def __init__(
        self,
        *,
        upload: UploadResult | Exception | None = None,
        process: list[ProcessResult | Exception] | None = None,
        confirm: ConfirmationReceipt | Exception | None = None,
        upload_gate: asyncio.Event | None = None,
        process_gate: asyncio.Event | None = None,
        confirm_gate: asyncio.Event | None = None,
    ) -> None:
        self.upload_result = upload if upload is not None else UploadResult(receipt_id=42)
        self.process_results = list(process) if process is not None else [_process_result()]
        self.confirm_result = confirm if confirm is not None else _confirmation()
        self.upload_gate = upload_gate
        self.process_gate = process_gate
        self.confirm_gate = confirm_gate
        self.upload_calls: list[ReceiptFile] = []
        self.process_calls: list[tuple[int, ParsedReceipt | None]] = []
        self.confirm_calls: list[tuple[int, ConfirmOverride | None]] = []

    async def upload(self, receipt_file: ReceiptFile) -> UploadResult:
        self.upload_calls.append(receipt_file)
        if self.upload_gate is not None:
            await self.upload_gate.wait()
        return _outcome(self.upload_result)

    async def process(self, receipt_id: int, parsed_hint: ParsedReceipt | None = None) -> ProcessResult:
        self.process_calls.append((receipt_id, parsed_hint))
        if self.process_gate is not None:
            await self.process_gate.wait()
        return _outcome(self.process_results.pop(0))

    async def confirm(self, receipt_id: int, override: ConfirmOverride | None = None) -> ConfirmationReceipt:
        self.confirm_calls.append((receipt_id, override))
        if self.confirm_gate is not None:
            await self.confirm_gate.wait()
        return _outcome(self.confirm_result)


def _workflow(service: FakeReceiptService, events: ReceiptEvents | None = None) -> ReceiptWorkflow:
    return ReceiptWorkflow(service, events, clock=lambda: _NOW)


def _fill_target_form(workflow: ReceiptWorkflow) -> None:
    workflow.update_manual_form(retailer="Target", total_amount="25.00")
    workflow.update_manual_item(0, name="Shirt", amount="15", brand="")
    workflow.add_manual_item()


def test_foot_locker_receipt_end_to_end() -> None:
    service = FakeReceiptService()
    events = ReceiptEvents()
    received: list[ConfirmationReceipt] = []
    events.subscribe(received.append)
    workflow = _workflow(service, events)

    session = asyncio.run(workflow.select_file(_jpeg()))

    assert session.step == "completed"
    assert session.receipt_id == 42
    assert session.parsed_data is not None
    assert session.parsed_data.retailer.name == "Foot Locker"
    assert [(a.stock_symbol, a.amount) for a in session.allocations] == [
        ("FL", Decimal("0.60")),
        ("NKE", Decimal("0.40")),
    ]
    assert session.total_round_up == Decimal("1.00")
    assert session.ai_provider == "openai"
    assert session.error is None
    assert session.warnings == []
    assert workflow.progress_index == 3

    confirmation = asyncio.run(workflow.confirm())

    assert confirmation is not None
    assert confirmation.transaction_id == 900
    ((receipt_id, override),) = service.confirm_calls
    assert receipt_id == 42
    assert override is not None
    assert override.parsed_data.retailer.name == "Foot Locker"
    assert [a.stock_symbol for a in override.allocations] == ["FL", "NKE"]
    assert override.total_round_up == Decimal("1.00")
    assert workflow.session == ReceiptUploadSession()
    assert received == [confirmation]


def test_extraction_timeout_offers_manual_entry() -> None:
    timeout = ReceiptServiceTimeout("receipt-process timed out after 60 seconds")
    service = FakeReceiptService(upload=UploadResult(receipt_id=43), process=[timeout])
    workflow = _workflow(service)

    session = asyncio.run(workflow.select_file(_jpeg()))

    assert session.step == "manual-entry"
    assert session.receipt_id == 43
    assert session.error == "receipt-process timed out after 60 seconds"
    assert session.parsed_data is None
    assert session.allocations == []


def test_malformed_extraction_uses_fallback_message() -> None:
    service = FakeReceiptService(process=[MalformedPayloadError("process response: missing parsed_data")])
    workflow = _workflow(service)

    session = asyncio.run(workflow.select_file(_jpeg()))

    assert session.step == "manual-entry"
    assert session.error == EXTRACTION_FAILED_MESSAGE


def test_extraction_error_uses_service_message() -> None:
    error = ReceiptServiceError("Receipt not found", status_code=404, service_message="Receipt not found")
    service = FakeReceiptService(process=[error])

    session = asyncio.run(_workflow(service).select_file(_jpeg()))

    assert session.error == "Receipt not found"


def test_zero_allocations_go_to_review_without_error() -> None:
    service = FakeReceiptService(process=[_process_result(allocations=[])])
    workflow = _workflow(service)

    session = asyncio.run(workflow.select_file(_jpeg()))

    assert session.step == "manual-entry"
    assert session.error is None
    assert session.parsed_data is not None
    assert session.manual_form.retailer == "Foot Locker"
    assert session.manual_form.total_amount == "139.39"
    assert session.manual_form.items == [ManualItemRow(name="Air Max 90", amount="129.99", brand="Nike")]


def test_manual_entry_reprocesses_uploaded_receipt() -> None:
    timeout = ReceiptServiceTimeout("receipt-process timed out after 60 seconds")
    service = FakeReceiptService(process=[timeout, _process_result()])
    workflow = _workflow(service)
    asyncio.run(workflow.select_file(_jpeg()))

    _fill_target_form(workflow)
    session = asyncio.run(workflow.submit_manual_entry())

    assert session.step == "completed"
    assert session.error is None
    assert len(session.allocations) == 2
    receipt_id, hint = service.process_calls[1]
    assert receipt_id == 42
    assert hint is not None
    assert hint.retailer.name == "Target"
    assert session.parsed_data == hint


def test_failed_reprocess_completes_without_allocations() -> None:
    failure = ReceiptServiceError("HTTP 500", status_code=500)
    service = FakeReceiptService(process=[failure, failure])
    workflow = _workflow(service)
    asyncio.run(workflow.select_file(_jpeg()))

    _fill_target_form(workflow)
    session = asyncio.run(workflow.submit_manual_entry())

    assert session.step == "completed"
    assert session.allocations == []
    assert session.total_round_up == Decimal("1.00")
    assert session.receipt_id == 42

    asyncio.run(workflow.confirm())

    # Nothing to override without allocations
    assert service.confirm_calls == [(42, None)]


def test_target_manual_entry_without_upload() -> None:
    service = FakeReceiptService(upload=ReceiptServiceError("HTTP 500", status_code=500))
    workflow = _workflow(service)

    session = asyncio.run(workflow.select_file(_jpeg()))
    assert session.step == "error"
    assert session.error == UPLOAD_FAILED_MESSAGE

    workflow.enter_manually()
    assert workflow.step == "manual-entry"
    assert workflow.session.error is None

    _fill_target_form(workflow)
    session = asyncio.run(workflow.submit_manual_entry())

    assert session.step == "completed"
    assert session.parsed_data is not None
    assert [item.name for item in session.parsed_data.items] == ["Shirt"]
    assert session.parsed_data.items[0].amount == Decimal("15.00")
    assert session.parsed_data.timestamp == _NOW.isoformat()
    assert session.allocations == []
    assert session.total_round_up == Decimal("1.00")
    assert service.process_calls == []


def test_confirm_without_upload_stays_completed() -> None:
    service = FakeReceiptService(upload=ReceiptServiceError("HTTP 500", status_code=500))
    workflow = _workflow(service)
    asyncio.run(workflow.select_file(_jpeg()))
    workflow.enter_manually()
    _fill_target_form(workflow)
    asyncio.run(workflow.submit_manual_entry())

    assert asyncio.run(workflow.confirm()) is None

    assert workflow.step == "completed"
    assert workflow.session.error == NOT_UPLOADED_MESSAGE
    assert service.confirm_calls == []


def test_upload_error_shows_service_message() -> None:
    error = ReceiptServiceError("Storage quota exceeded", status_code=507, service_message="Storage quota exceeded")
    service = FakeReceiptService(upload=error)

    session = asyncio.run(_workflow(service).select_file(_jpeg()))

    assert session.step == "error"
    assert session.error == "Storage quota exceeded"
    assert service.process_calls == []


def test_refused_file_never_reaches_service() -> None:
    service = FakeReceiptService()
    workflow = _workflow(service)
    text_file = ReceiptFile(filename="notes.txt", content_type="text/plain", content=b"hello")

    session = asyncio.run(workflow.select_file(text_file))

    assert session.step == "idle"
    assert session.error == INVALID_TYPE_MESSAGE
    assert service.upload_calls == []

    session = asyncio.run(workflow.select_file(_jpeg()))

    assert session.step == "completed"
    assert session.error is None


def test_manual_validation_error_keeps_form_open() -> None:
    service = FakeReceiptService(process=[_process_result(allocations=[])])
    workflow = _workflow(service)
    asyncio.run(workflow.select_file(_jpeg()))

    workflow.update_manual_form(retailer="  ")
    session = asyncio.run(workflow.submit_manual_entry())

    assert session.step == "manual-entry"
    assert session.error == RETAILER_REQUIRED_MESSAGE
    assert len(service.process_calls) == 1


def test_lenient_amounts_surface_warnings() -> None:
    service = FakeReceiptService(upload=ReceiptServiceError("HTTP 500", status_code=500))
    workflow = _workflow(service)
    asyncio.run(workflow.select_file(_jpeg()))
    workflow.enter_manually()
    workflow.update_manual_form(retailer="Target", total_amount="25")
    workflow.update_manual_item(0, name="Shirt", amount="abc")

    session = asyncio.run(workflow.submit_manual_entry())

    assert session.step == "completed"
    assert session.parsed_data is not None
    assert session.parsed_data.items[0].amount == Decimal("0.00")
    assert session.warnings == ["Item 'Shirt': amount 'abc' is not a number; using 0.00"]


def test_inconsistent_allocations_are_flagged_not_changed() -> None:
    allocations = [
        {"stockSymbol": "FL", "stockName": "Foot Locker Inc.", "amount": 0.6, "percentage": 60},
        {"stockSymbol": "NKE", "stockName": "Nike Inc.", "amount": 0.3, "percentage": 30},
    ]
    service = FakeReceiptService(process=[_process_result(allocations=allocations)])

    session = asyncio.run(_workflow(service).select_file(_jpeg()))

    assert session.step == "completed"
    assert [a.amount for a in session.allocations] == [Decimal("0.60"), Decimal("0.30")]
    assert session.warnings == ["Allocations add up to 0.90 but the round-up is 1.00"]


def test_out_of_range_items_are_flagged_not_changed() -> None:
    items = [
        {"name": "Air Max 90", "brand": "Nike", "amount": 129.99, "brandSymbol": "NKE", "brandConfidence": 1.4},
        {"name": "Store credit", "amount": -10.0},
    ]
    service = FakeReceiptService(process=[_process_result(items=items)])

    session = asyncio.run(_workflow(service).select_file(_jpeg()))

    assert session.step == "completed"
    assert session.parsed_data is not None
    assert [item.amount for item in session.parsed_data.items] == [Decimal("129.99"), Decimal("-10.00")]
    assert session.parsed_data.items[0].brand_confidence == 1.4
    assert session.warnings == [
        "Item 'Air Max 90': brand confidence 1.4 outside 0-1",
        "Item 'Store credit': negative amount -10.00",
    ]


def test_edit_prefills_form_from_completed_result() -> None:
    workflow = _workflow(FakeReceiptService())
    asyncio.run(workflow.select_file(_jpeg()))

    session = workflow.edit()

    assert session.step == "manual-entry"
    assert session.manual_form.retailer == "Foot Locker"
    assert session.manual_form.items[0].name == "Air Max 90"
    assert workflow.add_manual_item("Socks", "9.99") == 1
    workflow.remove_manual_item(1)
    with pytest.raises(ValueError):
        workflow.remove_manual_item(0)


def test_confirm_failure_keeps_reviewed_data() -> None:
    failure = ReceiptServiceError("HTTP 500", status_code=500)
    service = FakeReceiptService(confirm=failure)
    events = ReceiptEvents()
    received: list[ConfirmationReceipt] = []
    events.subscribe(received.append)
    workflow = _workflow(service, events)
    asyncio.run(workflow.select_file(_jpeg()))

    assert asyncio.run(workflow.confirm()) is None

    session = workflow.session
    assert session.step == "error"
    assert session.error == CONFIRM_FAILED_MESSAGE
    assert session.receipt_id == 42
    assert session.parsed_data is not None
    assert len(session.allocations) == 2
    assert received == []

    assert workflow.try_again() == ReceiptUploadSession()


def test_actions_from_the_wrong_step_raise() -> None:
    workflow = _workflow(FakeReceiptService())

    with pytest.raises(InvalidTransitionError):
        asyncio.run(workflow.confirm())
    with pytest.raises(InvalidTransitionError):
        workflow.enter_manually()
    with pytest.raises(InvalidTransitionError):
        workflow.update_manual_form(retailer="Target")
    with pytest.raises(InvalidTransitionError):
        workflow.try_again()

    asyncio.run(workflow.select_file(_jpeg()))

    with pytest.raises(InvalidTransitionError):
        asyncio.run(workflow.select_file(_jpeg()))


def test_close_while_uploading_discards_late_response() -> None:
    async def scenario() -> tuple[ReceiptWorkflow, FakeReceiptService]:
        service = FakeReceiptService(upload_gate=asyncio.Event())
        workflow = _workflow(service)
        task = asyncio.create_task(workflow.select_file(_jpeg()))
        await asyncio.sleep(0)
        assert workflow.step == "uploading"
        assert workflow.is_busy

        workflow.close()
        assert service.upload_gate is not None
        service.upload_gate.set()
        await task
        return workflow, service

    workflow, service = asyncio.run(scenario())

    assert workflow.session == ReceiptUploadSession()
    assert service.process_calls == []


@pytest.mark.parametrize(
    "outcome",
    [_process_result(), ReceiptServiceError("HTTP 500", status_code=500)],
    ids=["success", "failure"],
)
def test_close_while_extracting_discards_late_response(outcome: ProcessResult | Exception) -> None:
    async def scenario() -> ReceiptWorkflow:
        gate = asyncio.Event()
        service = FakeReceiptService(process=[outcome], process_gate=gate)
        workflow = _workflow(service)
        task = asyncio.create_task(workflow.select_file(_jpeg()))
        await asyncio.sleep(0)
        assert workflow.step == "extracting"

        workflow.close()
        gate.set()
        await task
        return workflow

    workflow = asyncio.run(scenario())

    assert workflow.session == ReceiptUploadSession()


@pytest.mark.parametrize(
    "outcome",
    [_process_result(), ReceiptServiceError("HTTP 500", status_code=500)],
    ids=["success", "failure"],
)
def test_close_while_analyzing_manual_entry_discards_late_response(outcome: ProcessResult | Exception) -> None:
    timeout = ReceiptServiceTimeout("receipt-process timed out after 60 seconds")

    async def scenario() -> tuple[ReceiptWorkflow, FakeReceiptService]:
        service = FakeReceiptService(process=[timeout, outcome])
        workflow = _workflow(service)
        await workflow.select_file(_jpeg())
        assert workflow.step == "manual-entry"
        assert workflow.session.receipt_id == 42

        # Only the re-process call waits
        gate = asyncio.Event()
        service.process_gate = gate
        _fill_target_form(workflow)
        task = asyncio.create_task(workflow.submit_manual_entry())
        await asyncio.sleep(0)
        assert workflow.step == "analyzing"

        workflow.close()
        gate.set()
        await task
        return workflow, service

    workflow, service = asyncio.run(scenario())

    assert workflow.session == ReceiptUploadSession()
    assert len(service.process_calls) == 2


def test_confirmation_after_close_still_notifies() -> None:
    events = ReceiptEvents()
    received: list[ConfirmationReceipt] = []
    events.subscribe(received.append)

    async def scenario() -> ReceiptWorkflow:
        service = FakeReceiptService(confirm_gate=asyncio.Event())
        workflow = _workflow(service, events)
        await workflow.select_file(_jpeg())
        task = asyncio.create_task(workflow.confirm())
        await asyncio.sleep(0)
        assert workflow.step == "analyzing"

        workflow.close()
        # A new upload may already be under way
        workflow.session.error = "unrelated"
        assert service.confirm_gate is not None
        service.confirm_gate.set()
        assert await task is not None
        return workflow

    workflow = asyncio.run(scenario())

    assert workflow.session.error == "unrelated"
    assert workflow.step == "idle"
    assert [receipt.transaction_id for receipt in received] == [900]


def test_reset_restores_fresh_session() -> None:
    workflow = _workflow(FakeReceiptService(process=[_process_result(allocations=[])]))
    asyncio.run(workflow.select_file(_jpeg()))
    workflow.update_manual_form(retailer="Changed")

    assert workflow.reset() == ReceiptUploadSession()
    assert workflow.progress_index == -1
