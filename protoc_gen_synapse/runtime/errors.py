"""Error taxonomy shared by generated storage, RPC and GraphQL code.

Storage defaults raise StorageError subclasses, request validation raises
ValidationError subclasses, and the RPC layer wraps either in ServiceError,
whose status comes from STATUS_BY_ERROR and nowhere else.
"""
from typing import Dict, Optional, Type, Union


class StorageError(Exception):
    """Base class for storage-layer failures."""


class NotFound(StorageError):
    def __init__(self, message: str = "not found"):
        super().__init__(message)


class DatabaseError(StorageError):
    """Opaque wrapper around a database driver error."""


class InvalidArgument(StorageError):
    pass


class ValidationError(Exception):
    """Base class for request validation failures."""

    field: Optional[str] = None


class InvalidField(ValidationError):
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class MissingRequired(ValidationError):
    def __init__(self, field: str):
        super().__init__(f"{field}: is required")
        self.field = field


NOT_FOUND = "NOT_FOUND"
INTERNAL = "INTERNAL"
INVALID_ARGUMENT = "INVALID_ARGUMENT"

STATUS_BY_ERROR: Dict[Type[Exception], str] = {
    NotFound: NOT_FOUND,
    DatabaseError: INTERNAL,
    InvalidArgument: INVALID_ARGUMENT,
    ValidationError: INVALID_ARGUMENT,
}


def status_for(error: Exception) -> str:
    """Status name for a storage or validation error, resolved along its MRO."""
    for cls in type(error).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    if isinstance(error, StorageError):
        return INTERNAL
    raise TypeError(f"No status mapping for {type(error).__name__}")


class ServiceError(Exception):
    """A validation or storage error surfaced by the RPC layer."""

    def __init__(self, cause: Union[ValidationError, StorageError]):
        if not isinstance(cause, (ValidationError, StorageError)):
            raise TypeError(f"ServiceError cannot wrap {type(cause).__name__}")
        super().__init__(str(cause))
        self.cause = cause
        self.status = status_for(cause)

    @property
    def field(self) -> Optional[str]:
        return getattr(self.cause, "field", None)

    @classmethod
    def validation(cls, error: ValidationError) -> "ServiceError":
        return cls(error)

    @classmethod
    def storage(cls, error: StorageError) -> "ServiceError":
        return cls(error)


def is_not_found(error: Exception) -> bool:
    return isinstance(error, NotFound)
