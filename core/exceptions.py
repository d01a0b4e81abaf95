"""
Custom exceptions for the catalog sync pipeline with structured error context.

Each exception carries a context dictionary for debugging and the original
exception it wraps, if any.

Exception Hierarchy:
    SyncException (base)
    ├── ExtractionError
    │   ├── SourceUnavailableError
    │   ├── AuthenticationError
    │   ├── ResourceNotFoundError
    │   └── MalformedPayloadError
    ├── TransformationError
    │   └── NormalizationError
    ├── LoadError
    │   ├── PersistenceError
    │   └── BatchPersistenceError
    ├── CheckpointError
    ├── ImageResolutionError
    │   ├── AssetFetchError
    │   └── AssetUploadError
    ├── PipelineAbortedError
    └── RetryableError / NonRetryableError (mixins)

Only source-level and checkpoint-level failures are allowed to abort a run.
Everything under TransformationError, LoadError and ImageResolutionError is
absorbed by the runner and shows up in the run summary counters.
"""

from typing import Optional, Dict, Any
from datetime import datetime


class SyncException(Exception):
    """
    Base exception for all catalog sync errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, barcode, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(SyncException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Temporary upstream outages (HTTP 5xx)
    """
    pass


class NonRetryableError(SyncException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Resource not found (HTTP 404)
    - Unparseable payloads
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(SyncException):
    """Base exception for source read failures."""
    pass


class SourceUnavailableError(RetryableError, ExtractionError):
    """
    The upstream source could not be reached or read.

    For the catalog API this is the gateway-class "upstream unreachable"
    condition; for the file source it means the dump could not be opened.

    Context should include:
        - source_name: Name of the data source
        - api_url / file_path: What was being read
        - retry_count: Number of attempts made (if applicable)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: int = 502
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        self.context["status_code"] = status_code


class AuthenticationError(NonRetryableError, ExtractionError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class ResourceNotFoundError(NonRetryableError, ExtractionError):
    """Resource not found errors (HTTP 404) that should not be retried."""
    pass


class MalformedPayloadError(NonRetryableError, ExtractionError):
    """
    A page payload or line could not be parsed.

    Context should include:
        - source_name: Name of the data source
        - page / line_number: Where the payload came from
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(SyncException):
    """Base exception for data transformation failures."""
    pass


class NormalizationError(TransformationError):
    """
    Exception raised when a raw record cannot be mapped.

    Context should include:
        - source_name: Name of the data source
        - field_errors: Dictionary of field-level errors
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(SyncException):
    """Base exception for persistence failures."""
    pass


class PersistenceError(LoadError):
    """
    A single product could not be written.

    Context should include:
        - barcode: Unique key of the product
        - operation: INSERT or UPDATE
    """
    pass


class BatchPersistenceError(LoadError):
    """
    A whole batch could not be written.

    Context should include:
        - batch_size: Number of products in the batch
        - operation: Type of statement (BULK_INSERT)
        - table_name: Name of the table
    """
    pass


# ============================================================================
# Checkpoint Errors
# ============================================================================

class CheckpointError(SyncException):
    """
    Exception raised when checkpoint state cannot be read or written.

    Context should include:
        - source_key: Checkpoint key
        - path: Location of the checkpoint document (file backend)
        - operation: Operation that failed (load, save)
    """
    pass


# ============================================================================
# Image Errors
# ============================================================================

class ImageResolutionError(SyncException):
    """Base exception for image fetch/upload failures."""
    pass


class AssetFetchError(ImageResolutionError):
    """The candidate image URL could not be downloaded."""
    pass


class AssetUploadError(ImageResolutionError):
    """
    The asset store rejected an upload.

    Context should include:
        - folder: Target folder
        - asset_id: Target asset id
    """
    pass


# ============================================================================
# Run Errors
# ============================================================================

class PipelineAbortedError(SyncException):
    """
    A run was aborted by a source or checkpoint I/O failure.

    The partial run summary collected up to the failure is available as
    ``summary``.
    """

    def __init__(
        self,
        message: str,
        summary: Any = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, context, original_exception)
        self.summary = summary
