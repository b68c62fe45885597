class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ResourceNotFoundError(AppError):
    """Raised when a referenced room, course, instructor or schedule does not exist."""
    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource": resource_type, "id": resource_id},
        )

class BadRequestError(AppError):
    """Raised when a request is well-formed JSON but cannot be processed as submitted."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class ScheduleConflictError(AppError):
    """Raised by the API layer when a proposal was rejected by validation."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class ScheduleStateError(AppError):
    """Raised when an operation is not allowed for the schedule's current status."""
    def __init__(self, message: str):
        super().__init__(message, status_code=409)

class InfrastructureError(AppError):
    """Raised when the backing store is unreachable or a transaction could not complete.

    ``retryable`` marks deadlocks, serialization failures and lock timeouts: the
    same request may be sent again because validation is re-run on every attempt.
    """
    def __init__(self, message: str, *, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message, status_code=503, details={"retryable": retryable})

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
