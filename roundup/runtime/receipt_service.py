"""HTTP client for the hosted receipt functions (upload, process, confirm)."""

from __future__ import annotations

import time
from types import TracebackType
from typing import Any, Protocol

import httpx

from roundup.domain.receipt import (
    ConfirmationReceipt,
    ConfirmOverride,
    ParsedReceipt,
    ProcessResult,
    UploadResult,
)
from roundup.domain.receipt_file import ReceiptFile
from roundup.runtime.logging import get_logger
from roundup.runtime.settings import ServiceSettings

logger = get_logger(__name__)

UPLOAD_FUNCTION = "receipt-upload"
PROCESS_FUNCTION = "receipt-process"
CONFIRM_FUNCTION = "receipt-confirm"


class ReceiptServiceError(RuntimeError):
    """Raised when a receipt function answers with an error.

    ``service_message`` is the text the service itself sent, when it sent one.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        service_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.service_message = service_message


class ReceiptServiceUnavailable(ReceiptServiceError):
    """Raised when the receipt functions cannot be reached."""


class ReceiptServiceTimeout(ReceiptServiceError):
    """Raised when a receipt function does not answer within the timeout."""


class ReceiptService(Protocol):
    """The three remote operations the workflow depends on."""

    async def upload(self, receipt_file: ReceiptFile) -> UploadResult: ...

    async def process(self, receipt_id: int, parsed_hint: ParsedReceipt | None = None) -> ProcessResult: ...

    async def confirm(self, receipt_id: int, override: ConfirmOverride | None = None) -> ConfirmationReceipt: ...


def _error_message(response: httpx.Response) -> str | None:
    """Pull the service's error text out of a failed response, if it sent any."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return None


class ReceiptServiceClient:
    """Async client for the receipt functions.

    Owns one httpx.AsyncClient; use ``async with`` or call ``aclose()``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
            headers["apikey"] = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: ServiceSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ReceiptServiceClient:
        return cls(settings.base_url, settings.api_key, timeout=settings.timeout, transport=transport)

    async def __aenter__(self) -> ReceiptServiceClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, function: str, **kwargs: Any) -> Any:
        logger.debug("POST %s/%s", self.base_url, function)
        start_time = time.time()
        try:
            response = await self._client.post(f"/{function}", **kwargs)
        except httpx.TimeoutException as e:
            logger.error("%s timed out after %.0f seconds", function, self.timeout)
            raise ReceiptServiceTimeout(f"{function} timed out after {self.timeout:.0f} seconds") from e
        except httpx.RequestError as e:
            logger.error("Failed to connect to %s: %s", function, e)
            raise ReceiptServiceUnavailable(f"Receipt service unavailable: {e}") from e
        logger.info("%s returned %s in %.2f seconds", function, response.status_code, time.time() - start_time)

        if response.is_error:
            service_message = _error_message(response)
            message = service_message or f"HTTP {response.status_code}"
            logger.error("%s error: %s - %s", function, response.status_code, message)
            raise ReceiptServiceError(message, status_code=response.status_code, service_message=service_message)

        try:
            return response.json()
        except ValueError as e:
            raise ReceiptServiceError(f"{function} returned a non-JSON response", response.status_code) from e

    async def upload(self, receipt_file: ReceiptFile) -> UploadResult:
        """Store the file and return the receipt id the service assigned."""
        logger.info("Uploading %s (%d bytes)", receipt_file.filename, receipt_file.size)
        body = await self._post(
            UPLOAD_FUNCTION,
            files={"file": (receipt_file.filename, receipt_file.content, receipt_file.content_type)},
        )
        return UploadResult.from_payload(body)

    async def process(self, receipt_id: int, parsed_hint: ParsedReceipt | None = None) -> ProcessResult:
        """Run extraction and allocation for an uploaded receipt.

        ``parsed_hint`` carries manual corrections; services that do not use
        it ignore the extra field.
        """
        payload: dict[str, Any] = {"receipt_id": receipt_id}
        if parsed_hint is not None:
            payload["parsed_data"] = parsed_hint.to_payload()
        body = await self._post(PROCESS_FUNCTION, json=payload)
        # TODO(security): this includes merchant/item details; redact before shipping DEBUG logs off-device.
        logger.debug("%s payload for receipt %s: %s", PROCESS_FUNCTION, receipt_id, body)
        return ProcessResult.from_payload(body, receipt_id)

    async def confirm(self, receipt_id: int, override: ConfirmOverride | None = None) -> ConfirmationReceipt:
        """Finalize the receipt into a transaction, optionally with corrected data."""
        payload: dict[str, Any] = {"receipt_id": receipt_id}
        if override is not None:
            payload["edited_data"] = override.to_payload()
        body = await self._post(CONFIRM_FUNCTION, json=payload)
        return ConfirmationReceipt.from_payload(body, receipt_id)
