"""Custom exceptions for BundleRec.

Defines specific exception types for better error handling and reporting.
"""

from typing import Any, Dict, Optional


class BundleRecException(Exception):
    """Base exception for BundleRec errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class InvalidAnchorError(BundleRecException):
    """Raised when no anchor product can be determined for a request."""

    def __init__(self, anchor_product_id: Optional[str] = None):
        message = "An anchor product id or cart contents are required."
        super().__init__(
            message=message,
            status_code=400,
            details={"anchor_product_id": anchor_product_id},
        )


class GatewayError(BundleRecException):
    """Raised when an upstream data source fails or returns malformed data."""

    def __init__(self, operation: str, error: Exception):
        message = f"Upstream call '{operation}' failed: {str(error)}"
        super().__init__(
            message=message,
            status_code=502,
            details={
                "operation": operation,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )
