"""
Exception taxonomy shared by adapters, the content workflow and the scrape operations
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for failures talking to an external service"""


class MissingConfigError(ServiceError):
    def __init__(self, setting: str):
        self.setting = setting
        super().__init__(f"{setting} is not configured")


class ProviderError(ServiceError):
    """The provider answered, but with an error body"""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 payload: Any = None, error_type: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload
        self.error_type = error_type


class NoCreditsError(ProviderError):
    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message, status_code=status_code, payload=payload, error_type="NO_CREDITS")


class TransportError(ServiceError):
    """Connection, timeout or protocol failure before a usable response"""


class StageFailure(Exception):
    """Hard failure that aborts a content writing run"""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage
        self.message = message


class EmptyChunkError(StageFailure):
    def __init__(self, chunk_number: int):
        super().__init__("article_generation", f"Chunk {chunk_number} returned empty content")
        self.chunk_number = chunk_number


class ArticleTooShortError(StageFailure):
    def __init__(self, length: int):
        super().__init__("article_generation", f"Final article is too short ({length} characters)")
        self.length = length


class ArticleSaveError(StageFailure):
    def __init__(self, message: str):
        super().__init__("database_save", f"Step 7 (Database Save) failed: {message}")


class NoRowReturnedError(ArticleSaveError):
    def __init__(self, title: str):
        super().__init__(f"no row returned after saving '{title}'")


class ScrapeRunError(Exception):
    """Failure of a lobstr-scraper operation, carrying its HTTP classification"""

    status_code = 500
    error_type = "SCRAPE_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None,
                 error_type: Optional[str] = None, debug: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type
        self.debug = debug or {}


class MissingFieldError(ScrapeRunError):
    status_code = 400
    error_type = "MISSING_FIELD"


class InvalidRequestError(ScrapeRunError):
    status_code = 400
    error_type = "INVALID_REQUEST"


class RunNotFoundError(ScrapeRunError):
    error_type = "RUN_NOT_FOUND"


class SquidBusyError(ScrapeRunError):
    status_code = 409
    error_type = "SQUID_BUSY"


class InvalidRunTransition(ScrapeRunError):
    error_type = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str):
        super().__init__(f"Run cannot move from '{current}' to '{target}'")
        self.current = current
        self.target = target
