"""In-process notification channel for confirmed receipts.

Views that show transactions subscribe here and refetch when a receipt is
confirmed, instead of listening on a global event bus.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from roundup.runtime.logging import get_logger

if TYPE_CHECKING:
    from roundup.domain.receipt import ConfirmationReceipt

logger = get_logger(__name__)

RECEIPT_PROCESSED = "receipt_processed"

ReceiptListener = Callable[["ConfirmationReceipt"], None]


class ReceiptEvents:
    """Callback registry for the receipt-processed event."""

    def __init__(self) -> None:
        self._listeners: list[ReceiptListener] = []

    def subscribe(self, listener: ReceiptListener) -> Callable[[], None]:
        """Register a listener; the returned callable removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, receipt: ConfirmationReceipt) -> None:
        logger.info(
            "%s: receipt %s -> transaction %s (%d listener(s))",
            RECEIPT_PROCESSED,
            receipt.receipt_id,
            receipt.transaction_id,
            len(self._listeners),
        )
        # Snapshot so a listener may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(receipt)
            except Exception:
                logger.exception("%s listener %r failed", RECEIPT_PROCESSED, listener)
