"""Custom exception classes for SiteLog."""


class SiteLogException(Exception):
    """Base exception for all SiteLog-specific errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


# Lookup errors

class ReportNotFoundError(SiteLogException):
    """Raised when a report is not found."""

    def __init__(self, report_id: str):
        super().__init__(
            message=f"Report not found: {report_id}",
            details="The requested report does not exist"
        )
        self.report_id = report_id


class ClientNotFoundError(SiteLogException):
    """Raised when a client is not found."""

    def __init__(self, client_id: str):
        super().__init__(
            message=f"Client not found: {client_id}",
            details="The requested client does not exist"
        )
        self.client_id = client_id


# Submission validation errors

class SubmissionValidationError(SiteLogException):
    """Raised when a submission is rejected before any report is created."""


class EmptySubmissionError(SubmissionValidationError):
    """Raised when a submission carries neither photos nor works performed."""

    def __init__(self):
        super().__init__(
            message="Submission must include at least one photo or a description of works performed",
            details="Both the photo list and the works performed text are empty"
        )


class ClientInactiveError(SubmissionValidationError):
    """Raised when submitting against a deactivated client."""

    def __init__(self, client_id: str):
        super().__init__(
            message=f"Client {client_id} is not accepting reports",
            details="The client account has been deactivated"
        )
        self.client_id = client_id


class ReportBusyError(SiteLogException):
    """Raised when a report is already queued or being processed."""

    def __init__(self, report_id: str):
        super().__init__(
            message=f"Report {report_id} is already being processed",
            details="Wait for the current run to finish before regenerating"
        )
        self.report_id = report_id


# Analysis errors

class AnalysisServiceError(SiteLogException):
    """Raised when the vision completion service fails."""

    def __init__(self, operation: str, original_error: Exception | None = None):
        message = f"Analysis service error during {operation}"
        if original_error:
            message += f": {str(original_error)}"
        super().__init__(
            message=message,
            details="The analysis service is temporarily unavailable"
        )
        self.operation = operation
        self.original_error = original_error


class AnalysisResponseError(SiteLogException):
    """Raised when the completion response does not match the analysis schema."""

    def __init__(self, reason: str, raw_response: str | None = None):
        super().__init__(
            message=f"Invalid analysis response: {reason}",
            details="The model did not return the structured report schema"
        )
        self.raw_response = raw_response


# Rendering errors

class RenderError(SiteLogException):
    """Raised when the PDF document cannot be produced."""


class RenderEngineUnavailableError(RenderError):
    """Raised when the headless rendering engine cannot be launched."""

    def __init__(self, engine: str, original_error: Exception | None = None):
        message = f"PDF engine '{engine}' is not available"
        if original_error:
            message += f": {str(original_error)}"
        super().__init__(
            message=message,
            details="Install the rendering engine or select another pdf_engine"
        )
        self.engine = engine
        self.original_error = original_error


class RenderTimeoutError(RenderError):
    """Raised when the rendering engine exceeds its time budget."""

    def __init__(self, engine: str, timeout: float):
        super().__init__(
            message=f"PDF engine '{engine}' timed out after {timeout:.0f}s",
            details="The document took too long to render"
        )
        self.engine = engine
        self.timeout = timeout


# Storage errors

class StorageError(SiteLogException):
    """Base class for blob store failures."""


class UnsafeStoragePathError(StorageError):
    """Raised for path traversal attempts or absolute storage references."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Rejected storage reference {path!r}: {reason}",
            details="Storage references must be relative keys without '..' segments"
        )
        self.path = path
        self.reason = reason


class StorageConfigurationError(StorageError):
    """Raised when no usable storage backend is configured."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            details="Configure BUNNY_STORAGE_ZONE_NAME, BUNNY_STORAGE_API_KEY and BUNNY_CDN_PULL_ZONE_URL"
        )


class StorageBackendError(StorageError):
    """Raised when the durable backend rejects a request."""

    def __init__(self, operation: str, key: str, status_code: int | None = None, body: str | None = None):
        message = f"Storage backend {operation} failed for {key}"
        if status_code is not None:
            message += f" (status {status_code})"
        super().__init__(message=message, details=body)
        self.operation = operation
        self.key = key
        self.status_code = status_code


class BlobNotFoundError(StorageError):
    """Raised when a stored file cannot be read from any backend."""

    def __init__(self, key: str):
        super().__init__(
            message=f"Stored file not found: {key}",
            details="The file is missing from both the durable backend and local storage"
        )
        self.key = key
