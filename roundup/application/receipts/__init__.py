"""Receipt workflows."""

from roundup.application.receipts.workflow import (
    CONFIRM_FAILED_MESSAGE,
    EXTRACTION_FAILED_MESSAGE,
    UPLOAD_FAILED_MESSAGE,
    ReceiptWorkflow,
)

__all__ = [
    "ReceiptWorkflow",
    "UPLOAD_FAILED_MESSAGE",
    "EXTRACTION_FAILED_MESSAGE",
    "CONFIRM_FAILED_MESSAGE",
]
