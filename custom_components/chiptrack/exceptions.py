"""Custom exceptions for the ChipTrack integration.

Every error raised by the tracking engine derives from :class:`ChipTrackError`
so Home Assistant service handlers can translate it into a user facing error
while keeping structured context for diagnostics.

Quality Scale: Platinum target
Home Assistant: 2025.9.3+
Python: 3.13+
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from homeassistant.exceptions import HomeAssistantError
from homeassistant.util import dt as dt_util


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"  # Minor issues, degraded functionality
    MEDIUM = "medium"  # Some features unavailable
    HIGH = "high"  # Core functionality affected


class ErrorCategory(Enum):
    """Error categories for organization and handling."""

    STORAGE = "storage"
    LOCATION = "location"
    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"


class ChipTrackError(HomeAssistantError):
    """Base exception for all ChipTrack errors.

    Carries a machine readable error code, a severity, a category and a
    free-form context mapping for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.BUSINESS_LOGIC,
        context: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Unique error code for programmatic handling
            severity: Error severity level
            category: Error category
            context: Additional context data for debugging
            timestamp: When the error occurred
        """
        super().__init__(message)

        self.error_code = error_code or self.__class__.__name__.lower()
        self.severity = severity
        self.category = category
        self.context = context or {}
        self.timestamp = timestamp or dt_util.utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error_code": self.error_code,
            "message": str(self),
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
        }


class StorageError(ChipTrackError):
    """Raised when a collection cannot be persisted."""

    def __init__(self, collection: str, reason: str) -> None:
        super().__init__(
            f"Failed to save {collection}: {reason}",
            error_code="storage_error",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            context={"collection": collection},
        )
        self.collection = collection


class LocationUnavailableError(ChipTrackError):
    """Raised when a position source has no usable coordinates."""

    def __init__(self, source: str, reason: str | None = None) -> None:
        message = f"Location unavailable from {source}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            error_code="location_unavailable",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.LOCATION,
            context={"source": source},
        )
        self.source = source


class PermissionDeniedError(LocationUnavailableError):
    """Raised when the owner's position may not be read."""

    def __init__(self, source: str) -> None:
        super().__init__(source, "permission not granted")
        self.error_code = "location_permission_denied"


class ChipRegistrationError(ChipTrackError):
    """Raised when a chip cannot be registered."""

    def __init__(self, chip_code: str, reason: str) -> None:
        super().__init__(
            f"Cannot register chip {chip_code}: {reason}",
            error_code="chip_registration_failed",
            category=ErrorCategory.VALIDATION,
            context={"chip_code": chip_code},
        )
        self.chip_code = chip_code


class ChipNotFoundError(ChipTrackError):
    """Raised when no chip is registered for a pet."""

    def __init__(self, pet_id: str) -> None:
        super().__init__(
            f"No chip registered for pet {pet_id}",
            error_code="chip_not_found",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            context={"pet_id": pet_id},
        )
        self.pet_id = pet_id


class InvalidSafeZoneError(ChipTrackError):
    """Raised when safe zone parameters are out of range."""

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(
            f"Invalid safe zone {field} ({value}): {reason}",
            error_code="invalid_safe_zone",
            category=ErrorCategory.VALIDATION,
            context={"field": field, "value": value},
        )
        self.field = field
