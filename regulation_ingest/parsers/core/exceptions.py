"""
Parser Exception Hierarchy

Exceptions raised (or recorded) while turning regulation text into a tree.

Architecture:
    ParserError (Base)
    ├── ParserConfigurationError
    │   └── NoisePatternError
    ├── ParsingError
    │   ├── InputFileError
    │   └── StructuralError
    └── ValidationError
        └── RegulationCodeError

Structural and validation errors are recoverable: the builder records them
and keeps going. Only InputFileError (unreadable input) stops a parse.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ParserError(Exception):
    """
    Base exception for all parser-related errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        context: Additional context about the error
        timestamp: When the error occurred
        recoverable: Whether parsing can continue
    """

    def __init__(
        self,
        message: str,
        error_code: str = "PARSER_ERROR",
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.recoverable = recoverable
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/reports."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "original_exception": (
                str(self.original_exception) if self.original_exception else None
            )
        }


# ============================================================================
# CONFIGURATION ERRORS
# ============================================================================

class ParserConfigurationError(ParserError):
    """Parser configuration is invalid."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "PARSER_CONFIG_ERROR")
        super().__init__(message=message, **kwargs)


class NoisePatternError(ParserConfigurationError):
    """A configured noise pattern does not compile."""

    def __init__(self, pattern: str, reason: str, **kwargs):
        super().__init__(
            message=f"Invalid noise pattern {pattern!r}: {reason}",
            error_code="INVALID_NOISE_PATTERN",
            context={"pattern": pattern, "reason": reason},
            **kwargs
        )


# ============================================================================
# PARSING ERRORS
# ============================================================================

class ParsingError(ParserError):
    """Errors during document parsing."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "PARSING_ERROR")
        kwargs.setdefault("recoverable", True)
        super().__init__(message=message, **kwargs)


class InputFileError(ParsingError):
    """Input file is missing or cannot be decoded."""

    def __init__(self, file_path: str, reason: str, **kwargs):
        super().__init__(
            message=f"Cannot read regulation file {file_path}: {reason}",
            error_code="INPUT_FILE_ERROR",
            context={"file_path": file_path, "reason": reason},
            recoverable=False,
            **kwargs
        )


class StructuralError(ParsingError):
    """
    A heading appeared without its required parent.

    Recorded by the builder, which synthesizes a placeholder parent.
    """

    def __init__(self, message: str, line_number: int, state: str, **kwargs):
        super().__init__(
            message=message,
            error_code="STRUCTURAL_ERROR",
            context={"line_number": line_number, "state": state},
            **kwargs
        )
        self.line_number = line_number
        self.state = state


# ============================================================================
# VALIDATION ERRORS
# ============================================================================

class ValidationError(ParserError):
    """Post-parse validation failed (advisory)."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "VALIDATION_ERROR")
        kwargs.setdefault("recoverable", True)
        super().__init__(message=message, **kwargs)


class RegulationCodeError(ValidationError):
    """Regulation code does not have the ``E-C-R`` shape."""

    def __init__(self, code: str, **kwargs):
        super().__init__(
            message=f"Invalid regulation code format: {code}",
            error_code="INVALID_REGULATION_CODE",
            context={"code": code},
            **kwargs
        )
        self.code = code


__all__ = [
    "ParserError",
    "ParserConfigurationError",
    "NoisePatternError",
    "ParsingError",
    "InputFileError",
    "StructuralError",
    "ValidationError",
    "RegulationCodeError",
]
