"""Custom exception classes"""

from typing import Any, Optional


class DirectoryEngineException(Exception):
    """Base exception for the directory ingestion worker"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(DirectoryEngineException):
    """Exception for invalid job payloads"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


class ConfigurationException(DirectoryEngineException):
    """Exception for missing required environment/configuration"""

    def __init__(self, setting: str):
        super().__init__(f"{setting} env var is required", status_code=500)


class ExternalServiceException(DirectoryEngineException):
    """Exception for external service errors"""

    def __init__(self, service: str, message: str):
        full_message = f"External service error ({service}): {message}"
        super().__init__(full_message, status_code=502)


class SearchIndexException(ExternalServiceException):
    """Exception for search index errors"""

    def __init__(self, message: str):
        super().__init__("typesense", message)

