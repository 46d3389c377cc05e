"""
Custom exception classes for the fleetdesk service.
"""
from typing import Optional, Any, Dict
import uuid
from fastapi import HTTPException, status


class BaseAPIException(HTTPException):
    """Base exception for API errors."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.detail,
            "correlation_id": self.correlation_id,
            "context": self.context,
        }


class WebhookVerificationError(BaseAPIException):
    """Channel verification handshake failed."""

    def __init__(self, detail: str = "Webhook verification failed"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FD_003",
        )


class UnsupportedEventSourceError(BaseAPIException):
    """Webhook event came from an object type this service does not handle."""

    def __init__(self, event_object: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unsupported event source '{event_object}'",
            error_code="FD_005",
            context={"object": event_object},
        )


class ServiceUnavailableError(BaseAPIException):
    """Exception for external service unavailability."""

    def __init__(
        self,
        service_name: str,
        detail: Optional[str] = None,
        retry_after: Optional[int] = None,
        **context
    ):
        self.service_name = service_name
        self.retry_after = retry_after
        if not detail:
            detail = f"External service '{service_name}' is currently unavailable"

        context_dict = {
            "service_name": service_name,
            "retry_after": retry_after,
            **context
        }

        headers = {}
        if retry_after:
            headers["Retry-After"] = str(retry_after)

        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code="FD_004",
            headers=headers,
            context=context_dict,
        )


# Reasoning Service Exceptions
class ReasoningServiceError(Exception):
    """Base exception for reasoning service errors."""

    pass


class ReasoningServiceTimeoutError(ReasoningServiceError):
    """Exception for reasoning service timeout errors."""

    pass


class ReasoningServiceRateLimitError(ReasoningServiceError):
    """Exception for reasoning service rate limit errors."""

    pass


class TranscriptionError(Exception):
    """Voice note could not be transcribed."""

    pass


# Document Store Exceptions
class DocumentStoreError(Exception):
    """Exception for document store errors."""

    def __init__(self, detail: str, operation: Optional[str] = None, **context):
        self.operation = operation
        if operation:
            context["operation"] = operation
        self.context = context
        super().__init__(detail)


# Non-API context exceptions
class ValidationException(Exception):
    """Exception for validation errors outside API context."""

    def __init__(self, detail: str, field: Optional[str] = None, value: Optional[Any] = None):
        self.detail = detail
        self.field = field
        self.value = value
        message = f"Validation failed: {detail}"
        if field:
            message = f"Validation failed for field '{field}': {detail}"
        super().__init__(message)


class BusinessRuleException(Exception):
    """Exception for business rule violations outside API context."""

    def __init__(self, detail: str, rule_name: Optional[str] = None):
        self.detail = detail
        self.rule_name = rule_name
        message = detail
        if rule_name:
            message = f"Business rule '{rule_name}' violated: {detail}"
        super().__init__(message)


class FlowStateError(Exception):
    """Exception for an impossible wizard state (unknown flow, cursor past the end)."""

    def __init__(self, detail: str, flow_id: Optional[str] = None):
        self.flow_id = flow_id
        message = detail
        if flow_id:
            message = f"Flow '{flow_id}' error: {detail}"
        super().__init__(message)
