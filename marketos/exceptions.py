"""
MarketOS exception hierarchy.

Every error carries a message, an optional machine-readable code and optional
details, and can be rendered as a dictionary for API responses and logs.
"""
from typing import Any, Dict, Optional


class MarketOSError(Exception):
    """Base exception for MarketOS errors."""

    default_message = "An error occurred in MarketOS"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert the exception to a dictionary."""
        error_dict: Dict[str, Any] = {
            "error": self.__class__.__name__,
            "message": self.message,
        }
        if self.code:
            error_dict["code"] = self.code
        if self.details:
            error_dict["details"] = self.details
        return error_dict


class AdapterFetchError(MarketOSError):
    """Transport, auth or timeout failure while talking to a marketplace."""

    default_message = "Marketplace fetch failed"

    def __init__(self, message: Optional[str] = None, marketplace: Optional[str] = None, operation: Optional[str] = None):
        details = {k: v for k, v in {"marketplace": marketplace, "operation": operation}.items() if v}
        super().__init__(message, code="adapter_fetch", details=details or None)
        self.marketplace = marketplace
        self.operation = operation


class UnsupportedMarketplaceError(MarketOSError):
    """An integration references a marketplace no adapter is registered for."""

    default_message = "Unsupported marketplace"

    def __init__(self, marketplace: Any, message: Optional[str] = None):
        super().__init__(
            message or f"Unsupported marketplace: {marketplace}",
            code="unsupported_marketplace",
            details={"marketplace": str(marketplace)},
        )
        self.marketplace = marketplace


class MissingIntegrationError(MarketOSError):
    """Sync was requested for an integration that does not exist."""

    default_message = "Integration not found"

    def __init__(self, integration_id: Any):
        super().__init__(
            f"Integration {integration_id} not found",
            code="missing_integration",
            details={"integration_id": str(integration_id)},
        )
        self.integration_id = integration_id


class SyncError(MarketOSError):
    """Wraps any failure during one integration's sync pass."""

    default_message = "Sync failed"

    def __init__(self, integration_id: Any, cause: BaseException):
        super().__init__(
            f"Sync of integration {integration_id} failed: {cause}",
            code="sync_failed",
            details={"integration_id": str(integration_id), "cause": type(cause).__name__},
        )
        self.integration_id = integration_id
        self.cause = cause


class NotificationError(MarketOSError):
    """Delivery to the external notification channel failed."""

    default_message = "Notification delivery failed"
