"""Runtime infrastructure for the roundup client.

This package provides process/runtime services including:
- Logging setup via get_logger()
- Path resolution via get_paths(), ProjectPaths
- Service settings via load_service_settings(), ServiceSettings
- The receipt functions client and the receipt-processed event channel

Usage:
    from roundup.runtime import get_logger, load_service_settings

    logger = get_logger(__name__)
    settings = load_service_settings()
    print(settings.base_url, settings.timeout)
"""

from roundup.runtime.events import RECEIPT_PROCESSED, ReceiptEvents
from roundup.runtime.logging import (
    DEFAULT_LOG_LEVEL,
    LOG_FORMAT,
    LOG_FORMAT_DEBUG,
    configure_logging,
    get_logger,
    set_log_level,
)
from roundup.runtime.paths import ProjectPaths, get_paths, reset_paths
from roundup.runtime.receipt_service import (
    ReceiptService,
    ReceiptServiceClient,
    ReceiptServiceError,
    ReceiptServiceTimeout,
    ReceiptServiceUnavailable,
)
from roundup.runtime.settings import ServiceSettings, SettingsError, load_service_settings

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "set_log_level",
    "DEFAULT_LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FORMAT_DEBUG",
    # Paths
    "get_paths",
    "reset_paths",
    "ProjectPaths",
    # Settings
    "ServiceSettings",
    "SettingsError",
    "load_service_settings",
    # Receipt functions
    "ReceiptService",
    "ReceiptServiceClient",
    "ReceiptServiceError",
    "ReceiptServiceTimeout",
    "ReceiptServiceUnavailable",
    # Events
    "RECEIPT_PROCESSED",
    "ReceiptEvents",
]
