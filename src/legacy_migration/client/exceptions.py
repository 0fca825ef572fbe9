"""Custom exceptions for Legacy Bridge.

This module defines exception classes for handling error conditions that can
occur while reading the legacy document store, transforming records and
driving migration sessions.
"""

from enum import Enum


class MigrationToolError(Exception):
    """Base exception for all migration tool errors."""

    pass


class EtlErrorCode(str, Enum):
    """Error kinds raised by the migration engine."""

    SOURCE_CONNECTION_FAILED = "SOURCE_CONNECTION_FAILED"
    SOURCE_QUERY_FAILED = "SOURCE_QUERY_FAILED"
    SOURCE_COMPANY_NOT_FOUND = "SOURCE_COMPANY_NOT_FOUND"
    INVALID_MAPPING = "INVALID_MAPPING"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_INVALID_STATE = "SESSION_INVALID_STATE"
    TRANSFORM_FAILED = "TRANSFORM_FAILED"
    IMPORT_FAILED = "IMPORT_FAILED"


SOURCE_ERROR_CODES = frozenset(
    {
        EtlErrorCode.SOURCE_CONNECTION_FAILED,
        EtlErrorCode.SOURCE_QUERY_FAILED,
        EtlErrorCode.SOURCE_COMPANY_NOT_FOUND,
    }
)


class EtlServiceError(MigrationToolError):
    """Raised by the migration engine with a machine-readable error code."""

    def __init__(self, message: str, code: EtlErrorCode):
        """Initialize migration engine error.

        Args:
            message: Error message
            code: Error kind
        """
        self.message = message
        self.code = code
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with its code."""
        return f"[{self.code.value}] {self.message}"

    @property
    def is_source_error(self) -> bool:
        """Whether the error originated in the legacy document store."""
        return self.code in SOURCE_ERROR_CODES


class StateError(MigrationToolError):
    """Raised when the target database cannot be read or written."""

    pass


class ConfigurationError(MigrationToolError):
    """Raised when configuration is invalid or missing."""

    pass


class TransformationError(MigrationToolError):
    """Raised when a legacy record cannot be transformed."""

    pass
