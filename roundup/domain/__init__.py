"""Core domain models for the round-up receipt workflow.

This module provides the core data models used throughout the project:
- ParsedReceipt, Retailer, ReceiptItem: extracted (or manually typed) receipt data
- Allocation: one ticker's share of the round-up pool
- ReceiptUploadSession: state carried by one upload

Usage:
    from roundup.domain import Allocation, ParsedReceipt, ReceiptUploadSession
"""

from roundup.domain.manual_entry import ManualEntryForm, ManualItemRow
from roundup.domain.receipt import (
    Allocation,
    ConfirmationReceipt,
    MalformedPayloadError,
    ParsedReceipt,
    ReceiptItem,
    Retailer,
)
from roundup.domain.receipt_file import ReceiptFile
from roundup.domain.session import InvalidTransitionError, ReceiptUploadSession, SessionStep

__all__ = [
    "Allocation",
    "ConfirmationReceipt",
    "InvalidTransitionError",
    "MalformedPayloadError",
    "ManualEntryForm",
    "ManualItemRow",
    "ParsedReceipt",
    "ReceiptFile",
    "ReceiptItem",
    "ReceiptUploadSession",
    "Retailer",
    "SessionStep",
]
