"""Receipt-to-investment workflow orchestration.

Drives one ReceiptUploadSession through upload -> extraction -> review ->
confirmation against the remote receipt functions. Remote failures never
escape this module: they become the session's ``error`` or send the user
to manual entry.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from roundup.domain.allocation import validate_allocation_set, validate_receipt_items
from roundup.domain.manual_entry import (
    ManualEntryForm,
    ManualItemRow,
    build_parsed_receipt,
    form_from_parsed_receipt,
    validate_form,
)
from roundup.domain.receipt import (
    DEFAULT_ROUND_UP,
    ConfirmationReceipt,
    ConfirmOverride,
    MalformedPayloadError,
)
from roundup.domain.receipt_file import ReceiptFile, validate_receipt_file
from roundup.domain.session import (
    InvalidTransitionError,
    ReceiptUploadSession,
    SessionStep,
    ensure_transition,
    progress_index,
)
from roundup.runtime import get_logger
from roundup.runtime.events import ReceiptEvents
from roundup.runtime.receipt_service import (
    ReceiptService,
    ReceiptServiceError,
    ReceiptServiceTimeout,
    ReceiptServiceUnavailable,
)

logger = get_logger(__name__)

UPLOAD_FAILED_MESSAGE = "Upload failed"
EXTRACTION_FAILED_MESSAGE = "AI extraction failed"
CONFIRM_FAILED_MESSAGE = "Failed to create transaction"
NOT_UPLOADED_MESSAGE = "Nothing to confirm: the receipt was never uploaded"

_REMOTE_FAILURES = (ReceiptServiceError, MalformedPayloadError)


def _failure_message(exc: Exception, fallback: str) -> str:
    """Message shown for a failed remote call: the service's own text when it sent one."""
    if isinstance(exc, (ReceiptServiceTimeout, ReceiptServiceUnavailable)):
        return str(exc)
    if isinstance(exc, ReceiptServiceError) and exc.service_message:
        return exc.service_message
    return fallback


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReceiptWorkflow:
    """Owns one receipt upload session and every transition it goes through."""

    def __init__(
        self,
        service: ReceiptService,
        events: ReceiptEvents | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.service = service
        self.events = events if events is not None else ReceiptEvents()
        self._clock = clock
        self.session = ReceiptUploadSession()
        # Bumped on every reset; responses for an older generation are dropped.
        self._generation = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def step(self) -> SessionStep:
        return self.session.step

    @property
    def is_busy(self) -> bool:
        return self.session.is_busy

    @property
    def progress_index(self) -> int:
        return progress_index(self.session.step)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _require(self, step: SessionStep, target: SessionStep, action: str) -> None:
        if self.session.step != step:
            raise InvalidTransitionError(self.session.step, target, action)

    def _move(self, target: SessionStep) -> None:
        logger.debug("Receipt session %s -> %s", self.session.step, target)
        self.session.move_to(target)

    def _is_stale(self, generation: int, call: str) -> bool:
        if generation == self._generation:
            return False
        logger.debug("Dropping %s response for a discarded receipt session", call)
        return True

    def _check_allocations(self) -> None:
        problems = validate_allocation_set(self.session.allocations, self.session.total_round_up)
        for problem in problems:
            logger.warning("Receipt %s allocation check: %s", self.session.receipt_id, problem)
        self.session.warnings.extend(problems)

    def _check_items(self) -> None:
        assert self.session.parsed_data is not None
        problems = validate_receipt_items(self.session.parsed_data)
        for problem in problems:
            logger.warning("Receipt %s item check: %s", self.session.receipt_id, problem)
        self.session.warnings.extend(problems)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------
    def reset(self) -> ReceiptUploadSession:
        """Discard the session; anything still in flight is ignored when it returns."""
        if self.session.is_busy:
            logger.info("Receipt session discarded while %s; late response will be ignored", self.session.step)
        self._generation += 1
        self.session = ReceiptUploadSession()
        return self.session

    def close(self) -> ReceiptUploadSession:
        return self.reset()

    def try_again(self) -> ReceiptUploadSession:
        """Recover from an error by starting over."""
        self._require("error", "idle", "try again")
        return self.reset()

    # ------------------------------------------------------------------
    # Upload + extraction
    # ------------------------------------------------------------------
    async def select_file(self, receipt_file: ReceiptFile) -> ReceiptUploadSession:
        """Validate the file locally, upload it, then run extraction."""
        session = self.session
        ensure_transition(session.step, "uploading")

        problem = validate_receipt_file(receipt_file)
        if problem is not None:
            logger.info("Refused %s (%s, %d bytes): %s", receipt_file.filename, receipt_file.content_type,
                        receipt_file.size, problem)
            session.error = problem
            return session

        session.error = None
        self._move("uploading")
        generation = self._generation

        try:
            upload = await self.service.upload(receipt_file)
        except _REMOTE_FAILURES as exc:
            if self._is_stale(generation, "upload"):
                return self.session
            logger.error("Upload of %s failed: %s", receipt_file.filename, exc)
            session.error = _failure_message(exc, UPLOAD_FAILED_MESSAGE)
            self._move("error")
            return session

        if self._is_stale(generation, "upload"):
            return self.session

        session.receipt_id = upload.receipt_id
        logger.info("Uploaded %s as receipt %s", receipt_file.filename, upload.receipt_id)
        self._move("extracting")
        await self._extract(generation)
        return self.session

    async def _extract(self, generation: int) -> None:
        session = self.session
        assert session.receipt_id is not None

        try:
            result = await self.service.process(session.receipt_id)
        except _REMOTE_FAILURES as exc:
            if self._is_stale(generation, "process"):
                return
            logger.warning("Extraction failed for receipt %s: %s; offering manual entry", session.receipt_id, exc)
            session.error = _failure_message(exc, EXTRACTION_FAILED_MESSAGE)
            self._move("manual-entry")
            return

        if self._is_stale(generation, "process"):
            return

        session.parsed_data = result.parsed_data
        session.allocations = list(result.allocations)
        session.total_round_up = result.total_round_up
        session.ai_provider = result.ai_provider
        self._check_items()

        if not result.allocations:
            # Extraction worked but nothing investable was found: a review step, not an error
            logger.info("Receipt %s has no allocations; asking for review", session.receipt_id)
            session.manual_form = form_from_parsed_receipt(result.parsed_data)
            self._move("manual-entry")
            return

        self._check_allocations()
        logger.info(
            "Receipt %s allocated %s across %d ticker(s) via %s",
            session.receipt_id,
            session.total_round_up,
            len(session.allocations),
            session.ai_provider or "unknown provider",
        )
        self._move("completed")

    # ------------------------------------------------------------------
    # Manual entry
    # ------------------------------------------------------------------
    def enter_manually(self) -> ReceiptUploadSession:
        """Leave the error screen for the manual form, keeping any gathered data."""
        self._require("error", "manual-entry", "enter details manually")
        session = self.session
        session.error = None
        if session.parsed_data is not None:
            session.manual_form = form_from_parsed_receipt(session.parsed_data)
        self._move("manual-entry")
        return session

    def edit(self) -> ReceiptUploadSession:
        """Reopen a completed result in the manual form for correction."""
        self._require("completed", "manual-entry", "edit the receipt")
        session = self.session
        if session.parsed_data is not None:
            session.manual_form = form_from_parsed_receipt(session.parsed_data)
        session.error = None
        self._move("manual-entry")
        return session

    def _form(self, action: str) -> ManualEntryForm:
        self._require("manual-entry", "manual-entry", action)
        return self.session.manual_form

    def update_manual_form(self, *, retailer: str | None = None, total_amount: str | None = None) -> None:
        form = self._form("edit the manual form")
        if retailer is not None:
            form.retailer = retailer
        if total_amount is not None:
            form.total_amount = total_amount

    def add_manual_item(self, name: str = "", amount: str = "", brand: str = "") -> int:
        """Append an item row and return its index."""
        form = self._form("add an item")
        form.items.append(ManualItemRow(name=name, amount=amount, brand=brand))
        return len(form.items) - 1

    def update_manual_item(
        self,
        index: int,
        *,
        name: str | None = None,
        amount: str | None = None,
        brand: str | None = None,
    ) -> None:
        form = self._form("edit an item")
        row = form.items[index]
        form.items[index] = ManualItemRow(
            name=row.name if name is None else name,
            amount=row.amount if amount is None else amount,
            brand=row.brand if brand is None else brand,
        )

    def remove_manual_item(self, index: int) -> None:
        form = self._form("remove an item")
        if index == 0:
            raise ValueError("The first item row cannot be removed")
        del form.items[index]

    async def submit_manual_entry(self) -> ReceiptUploadSession:
        """
        Build the receipt from the form and try to allocate it.

        With an uploaded receipt the service is asked again; when that fails,
        or nothing was uploaded, the session still completes with no
        allocations and the nominal round-up so the user can go on.
        """
        self._require("manual-entry", "analyzing", "submit manual entry")
        session = self.session

        problem = validate_form(session.manual_form)
        if problem is not None:
            session.error = problem
            return session

        manual = build_parsed_receipt(session.manual_form, now=self._clock())
        session.parsed_data = manual.parsed_receipt
        session.warnings = list(manual.warnings)
        for warning in manual.warnings:
            logger.warning("Manual entry: %s", warning)
        session.error = None
        self._move("analyzing")
        generation = self._generation

        if session.receipt_id is not None:
            try:
                result = await self.service.process(session.receipt_id, parsed_hint=manual.parsed_receipt)
            except _REMOTE_FAILURES as exc:
                if self._is_stale(generation, "process"):
                    return self.session
                logger.warning(
                    "Re-processing receipt %s failed: %s; completing without allocations",
                    session.receipt_id,
                    exc,
                )
            else:
                if self._is_stale(generation, "process"):
                    return self.session
                session.allocations = list(result.allocations)
                session.total_round_up = result.total_round_up
                self._check_allocations()
                self._move("completed")
                return session

        session.allocations = []
        session.total_round_up = DEFAULT_ROUND_UP
        self._move("completed")
        return session

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------
    async def confirm(self) -> ConfirmationReceipt | None:
        """
        Persist the reviewed receipt as a transaction.

        Returns the confirmation on success (the session is then discarded
        and listeners are notified), or None when the session moved to error.
        """
        self._require("completed", "analyzing", "confirm")
        session = self.session

        if session.receipt_id is None:
            session.error = NOT_UPLOADED_MESSAGE
            return None

        override = None
        if session.parsed_data is not None and session.allocations:
            override = ConfirmOverride(
                parsed_data=session.parsed_data,
                allocations=list(session.allocations),
                total_round_up=session.total_round_up,
            )

        session.error = None
        self._move("analyzing")
        generation = self._generation

        try:
            confirmation = await self.service.confirm(session.receipt_id, override)
        except _REMOTE_FAILURES as exc:
            if self._is_stale(generation, "confirm"):
                return None
            logger.error("Confirmation of receipt %s failed: %s", session.receipt_id, exc)
            session.error = _failure_message(exc, CONFIRM_FAILED_MESSAGE)
            self._move("error")
            return None

        if not self._is_stale(generation, "confirm"):
            self.reset()
        # The transaction exists either way, so views still need to refresh
        self.events.publish(confirmation)
        return confirmation
