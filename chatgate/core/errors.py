"""Gateway error taxonomy — each error maps to a stable HTTP status and code."""

from fastapi import status


class GatewayError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {"error": {"message": self.message, "code": self.code}}


class BadRequestError(GatewayError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"
    default_message = "Bad request"


class UnauthorizedError(GatewayError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class ForbiddenError(GatewayError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = "Tenant not accessible with these credentials"


class NotFoundError(GatewayError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(GatewayError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "Conflict"


class PairingActiveError(ConflictError):
    """A pairing window is already open for the tenant."""

    code = "ALREADY_ACTIVE"
    default_message = "Pairing code already issued for this session"

    def __init__(self, retry_after_seconds: int, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def to_body(self) -> dict:
        body = super().to_body()
        body["error"]["retryAfterSeconds"] = self.retry_after_seconds
        return body


class AuthFailureError(GatewayError):
    """The chat network rejected the account; the session must be replaced."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "AUTH_FAILURE"
    default_message = "Authentication rejected by the chat network"


class NotReadyError(GatewayError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "NOT_READY"
    default_message = "Session not ready"


class OperationTimeoutError(GatewayError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    code = "TIMEOUT"
    default_message = "Operation timed out"


class PairingTimeoutError(OperationTimeoutError):
    code = "PAIRING_TIMEOUT"
    default_message = "Timed out waiting for a pairing code"


class InternalError(GatewayError):
    pass
