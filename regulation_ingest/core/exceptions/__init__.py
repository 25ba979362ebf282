"""
Custom exceptions for the regulation ingestion pipeline.

This module provides the application-level exception hierarchy:
- Base exception class
- Configuration exceptions
- Database exceptions
- Import exceptions (node validation, transactions, cancellation)

Parser-specific exceptions live in regulation_ingest.parsers.core.exceptions.

All exceptions include:
- Error code
- Detailed error message
- Additional context (details dict)
- Serialization support

Usage:
    >>> from regulation_ingest.core.exceptions import RecordValidationError
    >>>
    >>> raise RecordValidationError(
    ...     message="Regulation code does not match its chapter",
    ...     errors=["code 3-1-2 is outside chapter 2"],
    ...     details={"code": "3-1-2"},
    ... )
"""
from typing import Any


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class BaseAppException(Exception):
    """
    Base exception for all application exceptions.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or "UNKNOWN_ERROR"
        self.details = details or {}

        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns:
            dict: Exception data
        """
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (code: {self.code}, details: {self.details})"
        return f"{self.message} (code: {self.code})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(BaseAppException):
    """Invalid or missing configuration."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=details)


# =============================================================================
# DATABASE EXCEPTIONS
# =============================================================================

class DatabaseError(BaseAppException):
    """Database operation failed outside of a recoverable node write."""

    def __init__(
        self,
        message: str = "Database error",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code="DATABASE_ERROR", details=details)


# =============================================================================
# IMPORT EXCEPTIONS
# =============================================================================

class RegulationImportError(BaseAppException):
    """Base class for importer failures."""

    def __init__(
        self,
        message: str,
        code: str = "IMPORT_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code=code, details=details)


class RecordValidationError(RegulationImportError):
    """
    A single hierarchy node failed validation before or during persistence.

    Raised per node; the importer records it and continues with siblings.

    Attributes:
        errors: Individual validation messages
    """

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.errors = errors or [message]
        super().__init__(message=message, code="RECORD_VALIDATION_ERROR", details=details)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class InvalidParsedDocumentError(RegulationImportError):
    """The importer input does not have the parsed-document shape."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="INVALID_PARSED_DOCUMENT", details=details)


class ImportCancelledError(RegulationImportError):
    """Import stopped because its cancellation token was set."""

    def __init__(self, message: str = "Import cancelled", details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="IMPORT_CANCELLED", details=details)


# =============================================================================
# MODULE EXPORTS
# =============================================================================

__all__ = [
    "BaseAppException",
    "ConfigurationError",
    "DatabaseError",
    "RegulationImportError",
    "RecordValidationError",
    "InvalidParsedDocumentError",
    "ImportCancelledError",
]
