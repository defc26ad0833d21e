class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str, message: str = None):
        super().__init__(
            message or f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )

class ScheduleValidationError(AppError):
    """Raised for malformed placements or attendance input. Nothing is written."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class ScheduleConflictError(AppError):
    """Raised when a placement overlaps an existing entry for the same class or teacher."""
    def __init__(self, message: str, conflicts: list[dict]):
        super().__init__(message, status_code=409, details={"conflicts": conflicts})

class AcademicScopeError(AppError):
    """Raised when a write targets anything other than the current academic year."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class NoCurrentAcademicYearError(AppError):
    """Raised when no academic year is flagged current. Callers may retry."""
    def __init__(self):
        super().__init__("No current academic year found", status_code=503, details={"retryable": True})

class CalendarStateError(AppError):
    """Raised when the calendar is inconsistent, e.g. several years flagged current."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)

class AccessDeniedError(AppError):
    """Raised when the caller's role allows the action but their assignments do not."""
    def __init__(self, message: str):
        super().__init__(message, status_code=403)

class NotAssignedError(AppError):
    """Raised when a teacher or student has no class or subject context to read from."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=404, details=details)
