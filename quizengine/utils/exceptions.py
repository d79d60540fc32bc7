from datetime import datetime, UTC
from typing import Optional, Dict, Any
import traceback
import uuid

class CustomException(Exception):

    def __init__(self,
                 message: str,
                 status_code: int = 500,
                 error_code: str = "INTERNAL_SERVER_ERROR",
                 details: Optional[Dict[str, Any]] = None,
                 user_message: Optional[str] = None,
                 correlation_id: Optional[str] = None,
                 ):
               self.message = message
               self.status_code = status_code
               self.error_code = error_code
               self.details = details or {}
               self.timestamp = datetime.now(UTC)
               self.user_message = user_message or message
               self.correlation_id = correlation_id or str(uuid.uuid4())
               self.traceback = traceback.format_exc() if status_code >= 500 else None
               super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        error_dict = {
            "code": self.error_code,
            "message": self.user_message,
            "status": self.status_code,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
            "type": "error"
        }

        if self.details:
            error_dict["details"] = self.details
        return {"error": error_dict}

    def get_response_headers(self) -> Dict[str, str]:
        """Get additional response headers for this exception"""
        headers = {"X-Correlation-ID": self.correlation_id}
        if self.status_code == 401:
            headers["WWW-Authenticate"] = "Bearer"
        return headers


class InvalidInputError(CustomException):
    """Malformed or out-of-range caller data, reported before any write"""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["provided_value"] = str(value)
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_INPUT",
            details=details
        )


class AuthenticationError(CustomException):
    """Authentication error exception"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTHENTICATION_ERROR"
        )


class AuthorizationError(CustomException):
    """Authorization error exception"""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="AUTHORIZATION_ERROR"
        )


class NotFoundError(CustomException):
    """Resource not found exception"""

    def __init__(self, message: str = "Resource not found", resource_type: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource_type": resource_type} if resource_type else None
        )


class ConflictError(CustomException):
    """Referential mismatch between quiz entities"""

    def __init__(self, message: str, resource_type: str = "resource"):
        super().__init__(
            message=message,
            status_code=409,
            error_code="CONFLICT",
            details={"resource_type": resource_type}
        )


class InvalidStateError(CustomException):
    """Operation not valid for the current lifecycle state"""

    def __init__(self, message: str, state: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code="INVALID_STATE",
            details={"state": state} if state else None
        )


class QuizInactiveError(InvalidStateError):

    def __init__(self, message: str = "Quiz is not active"):
        super().__init__(message=message, state="inactive")


class AttemptAlreadySubmittedError(InvalidStateError):

    def __init__(self, message: str = "Attempt already submitted"):
        super().__init__(message=message, state="submitted")


class DatabaseError(CustomException):
    """Database operation error exception"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="DATABASE_ERROR",
            details=details,
            user_message="A storage error occurred"
        )
