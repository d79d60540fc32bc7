import logging
import logging.handlers
import sys
import json
import time
import traceback
from datetime import datetime, UTC
from typing import Dict, Any, Optional
from pathlib import Path
from contextlib import contextmanager
from dataclasses import dataclass, asdict

from quizengine.core.config import settings


@dataclass
class LogContext:
    correlation_id: Optional[str] = None
    user_id: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    service_name: Optional[str] = None
    operation: Optional[str] = None


class EnhancedJSONFormatter(logging.Formatter):
    """JSON formatter with structured context fields"""

    CONTEXT_FIELDS = (
        'correlation_id', 'user_id', 'endpoint', 'method',
        'execution_time_ms', 'service_name', 'operation',
        'quiz_id', 'attempt_id', 'question_id', 'option_id'
    )

    def format(self, record: logging.LogRecord) -> str:

        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in self.CONTEXT_FIELDS:
            if getattr(record, field, None) is not None:
                log_entry[field] = getattr(record, field)

        if getattr(record, 'security_event', None):
            log_entry['security'] = record.security_event

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info).split('\n')
            }

        # Stack trace for errors logged without an exception
        if record.levelno >= logging.ERROR and not record.exc_info:
            log_entry['stack_trace'] = traceback.format_stack()

        return json.dumps(log_entry, default=str)


class PerformanceLogger:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    @contextmanager
    def measure_time(
            self,
            operation: str,
            service_name: Optional[str] = None,
            context: Optional[LogContext] = None
    ):
        """Context manager to measure execution time"""
        start_time = time.perf_counter()

        try:
            yield

        finally:
            execution_time = (time.perf_counter() - start_time) * 1000

            extra_data: Dict[str, Any] = {
                'operation': operation,
                'execution_time_ms': execution_time,
                'service_name': service_name
            }

            if context:
                extra_data.update({k: v for k, v in asdict(context).items() if v is not None})

            if execution_time > settings.SLOW_OPERATION_MS:
                self.logger.warning(
                    f"Slow operation: {operation} took {execution_time:.2f}ms",
                    extra=extra_data
                )
            else:
                self.logger.debug(
                    f"Operation completed: {operation} took {execution_time:.2f}ms",
                    extra=extra_data
                )


class SecurityLogger:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log_authentication_failure(self, reason: str, client_ip: Optional[str] = None):
        security_event = {
            'event_type': 'authentication',
            'success': False,
            'reason': reason,
            'client_ip': client_ip
        }

        self.logger.warning(
            f"Failed authentication attempt: {reason}",
            extra={'security_event': security_event}
        )

    def log_authorization_failure(
            self,
            user_id: str,
            resource: str,
            action: str,
            client_ip: Optional[str] = None
    ):
        """Log authorization failures"""

        security_event = {
            'event_type': 'authorization_failure',
            'resource': resource,
            'action': action,
            'client_ip': client_ip
        }

        self.logger.warning(
            f"Authorization denied for user {user_id} accessing {resource}",
            extra={
                'user_id': user_id,
                'security_event': security_event
            }
        )


def setup_logging():
        """Setup logging configuration"""

        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)

        if settings.ENVIRONMENT == "development":
            console_formatter = logging.Formatter(settings.LOG_FORMAT)
        else:
            console_formatter = EnhancedJSONFormatter()

        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

        # Main application log file
        app_handler = logging.handlers.RotatingFileHandler(
            log_dir / "quizengine.log",
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=10
        )
        app_handler.setLevel(logging.DEBUG)
        app_handler.setFormatter(EnhancedJSONFormatter())
        root_logger.addHandler(app_handler)

        # Error log file
        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / "errors.log",
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=10
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(EnhancedJSONFormatter())
        root_logger.addHandler(error_handler)

        logging.getLogger("uvicorn").setLevel(logging.INFO)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

def get_logger(name: str) -> logging.Logger:
        """Get logger instance with proper configuration"""
        return logging.getLogger(name)

def get_performance_logger(name: str) -> PerformanceLogger:
        """Get performance logger instance"""
        return PerformanceLogger(get_logger(name))

def get_security_logger(name: str) -> SecurityLogger:
        """Get security logger instance"""
        return SecurityLogger(get_logger(name))
