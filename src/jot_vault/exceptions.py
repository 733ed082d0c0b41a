"""Custom exceptions for Jot Vault.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Document errors (1xxx)
    DOCUMENT_NOT_FOUND = 1001
    DOCUMENT_VALIDATION_FAILED = 1002

    # Structure errors (2xxx)
    STRUCTURE_CYCLE = 2001
    STRUCTURE_INVALID_TARGET = 2002
    STRUCTURE_NOT_SIBLING = 2003
    STRUCTURE_UNKNOWN_DOCUMENT = 2004
    STRUCTURE_UNSUPPORTED = 2005

    # Storage errors (4xxx)
    STORAGE_NOT_FOUND = 4001
    STORAGE_IO_FAILURE = 4002
    STORAGE_PERMISSION_DENIED = 4003
    STORAGE_REMOTE_UNAVAILABLE = 4004

    # Codec and index errors (5xxx)
    CODEC_DECODE_FAILED = 5001
    INDEX_PARSE_FAILED = 5002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    CONFIG_MISSING = 6002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    PATH_TRAVERSAL_DETECTED = 7002


class StorageErrorKind(str, Enum):
    """The four ways a storage operation can fail."""

    NOT_FOUND = "not_found"
    IO_FAILURE = "io_failure"
    PERMISSION_DENIED = "permission_denied"
    REMOTE_UNAVAILABLE = "remote_unavailable"


_KIND_CODES = {
    StorageErrorKind.NOT_FOUND: ErrorCode.STORAGE_NOT_FOUND,
    StorageErrorKind.IO_FAILURE: ErrorCode.STORAGE_IO_FAILURE,
    StorageErrorKind.PERMISSION_DENIED: ErrorCode.STORAGE_PERMISSION_DENIED,
    StorageErrorKind.REMOTE_UNAVAILABLE: ErrorCode.STORAGE_REMOTE_UNAVAILABLE,
}


class JotVaultError(Exception):
    """Base exception for all Jot Vault errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class StorageError(JotVaultError):
    """Raised for storage/persistence errors.

    Only REMOTE_UNAVAILABLE is eligible for a caller-driven retry; the
    other kinds are surfaced to the user unchanged.
    """

    def __init__(
        self,
        message: str,
        kind: StorageErrorKind = StorageErrorKind.IO_FAILURE,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {"kind": kind.value}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=_KIND_CODES[kind], details=details)
        self.kind = kind
        self.operation = operation
        self.path = path
        self.original_error = original_error

    @property
    def retryable(self) -> bool:
        """Whether a manual retry may succeed."""
        return self.kind == StorageErrorKind.REMOTE_UNAVAILABLE


class DocumentNotFoundError(StorageError):
    """Raised when a document cannot be found in the vault."""

    def __init__(
        self,
        document_id: str,
        message: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(
            message or f"Document with ID '{document_id}' not found",
            kind=StorageErrorKind.NOT_FOUND,
            operation=operation,
        )
        self.details["document_id"] = document_id
        self.document_id = document_id


class StorageIOError(StorageError):
    """Raised when reading or writing the backing store fails."""

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(message, kind=StorageErrorKind.IO_FAILURE, **kwargs)


class StoragePermissionError(StorageError):
    """Raised when the backing store refuses an operation."""

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(message, kind=StorageErrorKind.PERMISSION_DENIED, **kwargs)


class RemoteUnavailableError(StorageError):
    """Raised when the remote authority cannot be reached."""

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(message, kind=StorageErrorKind.REMOTE_UNAVAILABLE, **kwargs)


class StructureValidationError(JotVaultError):
    """Raised when a structure move is rejected. No write has happened."""

    def __init__(
        self,
        message: str,
        active_id: Optional[str] = None,
        target_id: Optional[str] = None,
        code: ErrorCode = ErrorCode.STRUCTURE_INVALID_TARGET
    ):
        details = {}
        if active_id:
            details["active_id"] = active_id
        if target_id:
            details["target_id"] = target_id

        super().__init__(message, code=code, details=details)
        self.active_id = active_id
        self.target_id = target_id


class CodecDecodeError(JotVaultError):
    """Raised when an encoded replicated state cannot be applied."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)[:200]
        super().__init__(message, code=ErrorCode.CODEC_DECODE_FAILED, details=details)
        self.original_error = original_error


class IndexParseError(JotVaultError):
    """Raised when one document's block content cannot be indexed."""

    def __init__(
        self,
        message: str,
        document_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if document_id:
            details["document_id"] = document_id
        if original_error:
            details["original_error"] = str(original_error)[:200]
        super().__init__(message, code=ErrorCode.INDEX_PARSE_FAILED, details=details)
        self.document_id = document_id


class ConfigurationError(JotVaultError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class ValidationError(JotVaultError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value

