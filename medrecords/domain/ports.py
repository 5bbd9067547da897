"""Domain Ports - Abstract Contracts for Resource Persistence.

This module defines the Port interface (abstract contract) that storage adapters
must implement, together with the Result type and the exception taxonomy shared
by every layer. Following Hexagonal Architecture, the Domain Core defines what
it needs, not how it's provided.

Security Impact:
    - Authorization failures are raised as PermissionDeniedError and are never
      downgraded to generic persistence failures
    - Configuration errors are fatal and carry a remediation message instead of
      leaking credential values
    - Ambiguous patient matches are surfaced as DataIntegrityWarning for a human
      decision, never resolved automatically

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (in-memory, DuckDB, FHIR REST) implement ResourceStorePort
    - Resources cross the port as plain JSON-compatible dictionaries
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Iterator, Mapping, Optional, Sequence, TypeVar, Union

# Type variable for Result generic
T = TypeVar('T')

# A generic record: resourceType, id, fixed fields, extension and identifier lists
Resource = dict[str, Any]

# Search parameter values: a single value or a list of values combined with AND
SearchParams = Mapping[str, Union[str, Sequence[str]]]


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    The bulk import pipeline uses it to record the outcome of every row so that
    one row's failure never interrupts the batch.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (ValidationError, PersistenceError, etc.)
        error_details: Additional error context (row, code, etc.)

    Example:
        ```python
        result = Result.success_result(resource)
        if result.is_success():
            process(result.value)

        result = Result.failure_result(
            PersistenceError("Store unavailable", operation="create"),
            error_details={"row": 7, "code": "LAB007"}
        )
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(success=True, value=value)

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (e.g., "ValidationError", "PersistenceError")
            error_details: Additional context (row, code, etc.)

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class MedRecordsError(Exception):
    """Base exception for all errors raised by this package."""
    pass


class ValidationError(MedRecordsError):
    """Raised when a record or row fails field-level validation.

    Recoverable: in a batch the offending row is skipped and processing
    continues; in a single-entity operation the operation is aborted.

    Attributes:
        source: The source identifier that failed validation (row, field, etc.)
        details: Additional error details or validation messages
    """

    def __init__(self, message: str, source: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.source = source
        self.details = details or {}


class MappingError(MedRecordsError):
    """Raised when a generic record cannot be converted into a domain record.

    Attributes:
        resource_type: Type of the resource being mapped (if known)
        details: Additional error context
    """

    def __init__(self, message: str, resource_type: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.resource_type = resource_type
        self.details = details or {}


class InvalidReferenceError(MappingError):
    """Raised when a reference string or (type, id) pair is malformed."""
    pass


class PersistenceError(MedRecordsError):
    """Raised when the resource store fails to complete an operation.

    Attributes:
        operation: The store operation that failed (create, read, update, etc.)
        details: Additional error context (resource type, status code, etc.)
    """

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}


class NotFoundError(MedRecordsError):
    """Raised when a lookup target does not exist.

    Attributes:
        resource_type: Type of the missing resource
        resource_id: Identifier of the missing resource
    """

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None):
        super().__init__(message)
        self.resource_type = resource_type
        self.resource_id = resource_id


class PermissionDeniedError(MedRecordsError):
    """Raised when the store rejects an operation for authorization reasons.

    The store's message is carried verbatim; callers must not convert this
    error into a generic failure.

    Attributes:
        operation: The store operation that was rejected
    """

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class DataIntegrityWarning(MedRecordsError, UserWarning):
    """Raised or warned when persisted data is duplicated or ambiguous.

    Used both as an exception (a duplicate blocks registration until the caller
    decides) and as a ``warnings`` category (an ambiguous match is reported
    alongside the surfaced record).

    Attributes:
        matches: References of the conflicting records
    """

    def __init__(self, message: str, matches: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.matches = list(matches or [])


class ConfigurationError(MedRecordsError):
    """Raised when configuration is missing or invalid. Always fatal.

    Attributes:
        remediation: Human-readable instructions for fixing the configuration
    """

    def __init__(self, message: str, remediation: Optional[str] = None):
        super().__init__(message)
        self.remediation = remediation


class SourceNotFoundError(MedRecordsError):
    """Raised when an import source cannot be found or accessed.

    Attributes:
        source: The source identifier that was not found
    """

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class UnsupportedSourceError(MedRecordsError):
    """Raised when an import source format is not supported.

    Attributes:
        source: The source identifier that is unsupported
        reader: The reader that cannot handle the source
    """

    def __init__(self, message: str, source: Optional[str] = None, reader: Optional[str] = None):
        super().__init__(message)
        self.source = source
        self.reader = reader


# ============================================================================
# Port Interfaces
# ============================================================================

class ResourceStorePort(ABC):
    """Abstract contract for persisting generic records by type and id.

    Implementations stamp ``meta.versionId`` and ``meta.lastUpdated`` on every
    write. Local stores additionally stamp ``meta.created`` once, on create.

    Security Impact:
        - Authorization failures must raise PermissionDeniedError verbatim
        - Credentials used by remote stores are never logged

    Architecture:
        - Domain services depend on this port only, never on an adapter
        - Search parameter semantics: a list value means AND, a comma inside a
          value means OR; ``_count``, ``_offset`` and ``_sort`` control paging
    """

    @abstractmethod
    def create(self, resource: Resource) -> Resource:
        """Persist a new resource and return it with its assigned id and meta.

        Raises:
            PersistenceError: If the store fails to write the resource
            PermissionDeniedError: If the caller may not create the resource
        """
        pass

    @abstractmethod
    def read(self, resource_type: str, resource_id: str) -> Resource:
        """Read one resource by type and id.

        Raises:
            NotFoundError: If no such resource exists
            PersistenceError: If the store fails to read
        """
        pass

    @abstractmethod
    def update(self, resource: Resource) -> Resource:
        """Replace an existing resource (identified by its type and id).

        Raises:
            NotFoundError: If the resource does not exist
            PersistenceError: If the store fails to write
            PermissionDeniedError: If the caller may not update the resource
        """
        pass

    @abstractmethod
    def delete(self, resource_type: str, resource_id: str) -> None:
        """Delete one resource by type and id.

        Raises:
            NotFoundError: If the resource does not exist
            PermissionDeniedError: If the caller may not delete the resource
        """
        pass

    @abstractmethod
    def search(self, resource_type: str, params: Optional[SearchParams] = None) -> list[Resource]:
        """Search resources of one type by parameter set.

        Parameters:
            resource_type: Type of resources to search
            params: Search parameters (see class docstring for semantics)

        Returns:
            Matching resources, in creation order unless ``_sort`` is given
        """
        pass

    def close(self) -> None:
        """Release store resources (connections, HTTP clients)."""
        pass


class RowReaderPort(ABC):
    """Abstract contract for tabular import sources.

    Key Principles:
        - Rows are plain mappings of header name to cell text
        - Blank cells read as None
        - Source order is preserved, so a row's position gives its row number

    Example Usage:
        ```python
        reader = get_row_reader("services.xlsx")
        rows = list(reader.read_rows("services.xlsx"))
        ```
    """

    @abstractmethod
    def read_rows(self, source: str) -> Iterator[dict[str, Optional[str]]]:
        """Yield the source's data rows in order.

        Raises:
            SourceNotFoundError: If the source does not exist
            UnsupportedSourceError: If the source cannot be parsed
        """
        pass

    @abstractmethod
    def can_read(self, source: str) -> bool:
        """Whether this reader handles the source (by file extension)."""
        pass
