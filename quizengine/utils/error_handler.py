import uuid
from datetime import datetime, UTC
from typing import Dict, Any, Optional, List, Union
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from quizengine.utils.exceptions import CustomException
from quizengine.core.logging import get_logger

logger = get_logger(__name__)


class ErrorResponseFormatter:
    """error responses with a consistent structure"""

    @staticmethod
    def format_error_response(
            error_code: str,
            message: str,
            status_code: int = 500,
            details: Optional[Dict[str, Any]] = None,
            correlation_id: Optional[str] = None,
            request_path: Optional[str] = None
    ) -> Dict[str, Any]:
        """a standardized error response"""

        error_response = {
            "error": {
                "code": error_code,
                "message": message,
                "status": status_code,
                "timestamp": datetime.now(UTC).isoformat(),
                "correlation_id": correlation_id or str(uuid.uuid4()),
                "type": "error"
            }
        }

        if details:
            error_response["error"]["details"] = details

        if request_path:
            error_response["error"]["path"] = request_path

        return error_response

    @staticmethod
    def format_validation_error_response(
            validation_errors: List[Dict[str, Any]],
            correlation_id: Optional[str] = None,
            request_path: Optional[str] = None
    ) -> Dict[str, Any]:
        """a validation error response with field specific detail"""

        formatted_errors = []
        for error in validation_errors:
            formatted_errors.append({
                "field": error.get("loc", ["unknown"])[-1] if error.get("loc") else "unknown",
                "message": error.get("msg", "Validation failed"),
                "type": error.get("type", "validation_error"),
            })

        return ErrorResponseFormatter.format_error_response(
            error_code="VALIDATION_ERROR",
            message="Request validation failed",
            status_code=422,
            details={
                "validation_errors": formatted_errors,
                "error_count": len(formatted_errors)
            },
            correlation_id=correlation_id,
            request_path=request_path
        )


class GlobalExceptionHandler:
    """Global exception handler for all application errors"""

    def __init__(self):
        self.formatter = ErrorResponseFormatter()

    async def handle_custom_exception(
            self,
            request: Request,
            exc: CustomException
    ) -> JSONResponse:
        """Handle custom application exceptions"""

        log_data = {
            "correlation_id": exc.correlation_id,
            "endpoint": request.url.path,
            "method": request.method,
        }

        if exc.status_code >= 500:
            logger.error(f"Server error: {exc.message}", extra=log_data)
        else:
            logger.warning(f"Client error [{exc.error_code}]: {exc.message}", extra=log_data)

        response_data = exc.to_dict()
        response_data["error"]["path"] = request.url.path

        return JSONResponse(
            status_code=exc.status_code,
            content=response_data,
            headers=exc.get_response_headers()
        )

    async def handle_http_exception(
            self,
            request: Request,
            exc: Union[HTTPException, StarletteHTTPException]
    ) -> JSONResponse:
        """Handle FastAPI HTTP exceptions"""

        correlation_id = str(uuid.uuid4())

        logger.warning(
            f"HTTP exception: {exc.detail}",
            extra={"correlation_id": correlation_id, "endpoint": request.url.path}
        )

        response_data = self.formatter.format_error_response(
            error_code="HTTP_ERROR",
            message=str(exc.detail),
            status_code=exc.status_code,
            correlation_id=correlation_id,
            request_path=request.url.path
        )

        return JSONResponse(
            status_code=exc.status_code,
            content=response_data,
            headers={"X-Correlation-ID": correlation_id}
        )

    async def handle_validation_exception(
            self,
            request: Request,
            exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation exceptions"""

        correlation_id = str(uuid.uuid4())

        logger.warning(
            f"Validation error: {len(exc.errors())} validation failures",
            extra={"correlation_id": correlation_id, "endpoint": request.url.path}
        )

        response_data = self.formatter.format_validation_error_response(
            validation_errors=exc.errors(),
            correlation_id=correlation_id,
            request_path=request.url.path
        )

        return JSONResponse(
            status_code=422,
            content=response_data,
            headers={"X-Correlation-ID": correlation_id}
        )

    async def handle_database_exception(
            self,
            request: Request,
            exc: SQLAlchemyError
    ) -> JSONResponse:
        """Handle storage errors that escaped the service layer"""

        correlation_id = str(uuid.uuid4())

        logger.error(
            f"Database error: {str(exc)}",
            extra={"correlation_id": correlation_id, "endpoint": request.url.path},
            exc_info=True
        )

        response_data = self.formatter.format_error_response(
            error_code="DATABASE_ERROR",
            message="A storage error occurred",
            status_code=500,
            correlation_id=correlation_id,
            request_path=request.url.path
        )

        return JSONResponse(
            status_code=500,
            content=response_data,
            headers={"X-Correlation-ID": correlation_id}
        )


# Global exception handler instance
global_exception_handler = GlobalExceptionHandler()


def setup_exception_handlers(app):
    """Setup all exception handlers for the FastAPI app"""

    @app.exception_handler(CustomException)
    async def custom_exception_handler(request: Request, exc: CustomException):
        return await global_exception_handler.handle_custom_exception(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await global_exception_handler.handle_http_exception(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return await global_exception_handler.handle_validation_exception(request, exc)

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        return await global_exception_handler.handle_database_exception(request, exc)
