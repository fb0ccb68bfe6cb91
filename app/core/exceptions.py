"""
Keyhost Flights - Custom Exceptions
Centralized exception classes for consistent error handling
"""

from typing import Any, Dict, List, Optional


class AppException(Exception):
    """
    Base application exception.
    All custom exceptions should inherit from this.
    """

    def __init__(
        self,
        message: str = "An error occurred",
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# === Resource Errors ===

class NotFoundError(AppException):
    """Resource not found"""

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details=details
        )


class SearchNotFoundError(NotFoundError):
    """Search session unknown, expired or superseded"""

    def __init__(self, session_token: Optional[str] = None):
        super().__init__(resource="Search session", resource_id=session_token)


class OfferNotFoundError(NotFoundError):
    """Offer not part of the session's result set"""

    def __init__(self, offer_id: Optional[str] = None):
        super().__init__(resource="Offer", resource_id=offer_id)


# === Conflict Errors ===

class ConflictError(AppException):
    """Request conflicts with the current state"""

    def __init__(
        self,
        message: str = "Resource conflict",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            status_code=409,
            error_code="CONFLICT",
            details=details
        )


class SearchSupersededError(ConflictError):
    """A newer search on the same channel started while this one was initiating"""

    def __init__(self, channel_id: Optional[str] = None):
        super().__init__(
            message="Search was superseded by a newer search",
            details={"channel": channel_id} if channel_id else None
        )
        self.error_code = "SEARCH_SUPERSEDED"


# === Validation Errors ===

class ValidationError(AppException):
    """Input validation failed"""

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[List[Dict[str, str]]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        if errors:
            details["errors"] = errors
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=details
        )

    @property
    def errors(self) -> List[Dict[str, str]]:
        return self.details.get("errors", [])


# === External Service Errors ===

class ExternalServiceError(AppException):
    """External service call failed"""

    def __init__(
        self,
        service: str = "External service",
        message: str = "request failed",
        status_code: int = 502,
        error_code: str = "EXTERNAL_SERVICE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.service = service
        super().__init__(
            message=f"{service}: {message}",
            status_code=status_code,
            error_code=error_code,
            details=details
        )


class SessionCreationError(ExternalServiceError):
    """Search hub could not open a search session; fatal for the search"""

    def __init__(
        self,
        message: str = "search could not start",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            service="Flight search",
            message=message,
            status_code=502,
            error_code="SESSION_CREATION_FAILED",
            details=details
        )


class ProviderError(ExternalServiceError):
    """
    Failure of a single flight inventory provider.
    Recorded as provider status; never aborts the overall search.
    """

    def __init__(
        self,
        provider: str,
        message: str = "provider request failed",
        status_code: int = 502,
        error_code: str = "PROVIDER_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.provider = provider
        super().__init__(
            service=provider,
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details
        )


class ProviderTimeout(ProviderError):
    """Provider did not answer within the configured bound"""

    def __init__(
        self,
        provider: str,
        message: str = "timed out",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            provider=provider,
            message=message,
            status_code=504,
            error_code="PROVIDER_TIMEOUT",
            details=details
        )


class ProviderRejected(ProviderError):
    """Provider refused the request (HTTP error or transport failure)"""

    def __init__(
        self,
        provider: str,
        message: str = "request rejected",
        upstream_status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        self.upstream_status = upstream_status
        super().__init__(
            provider=provider,
            message=message,
            status_code=502,
            error_code="PROVIDER_REJECTED",
            details=details
        )


class ProviderMalformedResponse(ProviderError):
    """Provider answered with a body that cannot be read as an offer list"""

    def __init__(
        self,
        provider: str,
        message: str = "malformed response",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            provider=provider,
            message=message,
            status_code=502,
            error_code="PROVIDER_MALFORMED_RESPONSE",
            details=details
        )

