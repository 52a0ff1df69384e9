"""Local gate for receipt files before anything is sent over the wire."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
ALLOWED_CONTENT_TYPES = ("image/png", "image/jpeg", "application/pdf")

INVALID_TYPE_MESSAGE = "Invalid file type. Accepted: PNG, JPG, PDF"
TOO_LARGE_MESSAGE = "File too large. Maximum 10 MB."


@dataclass(frozen=True)
class ReceiptFile:
    """A receipt picked by the user: name, declared MIME type and bytes."""

    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def guess_content_type(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def check_receipt_file(content_type: str, size: int) -> str | None:
    """Return why a file would be refused, or None when it may be uploaded.

    Type is checked before size, so an oversized text file reports the type.
    """
    if content_type not in ALLOWED_CONTENT_TYPES:
        return INVALID_TYPE_MESSAGE
    if size > MAX_FILE_SIZE:
        return TOO_LARGE_MESSAGE
    return None


def validate_receipt_file(receipt_file: ReceiptFile) -> str | None:
    return check_receipt_file(receipt_file.content_type, receipt_file.size)
