# logging_config.py

import logging
import structlog
import sys
from typing import Any, Dict
from flask import has_request_context, request, g


def add_request_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add Flask request context to log entries"""
    if has_request_context():
        event_dict.setdefault("request_id", getattr(g, 'request_id', None))
        event_dict.setdefault("user_id", getattr(g, 'user_id', None))
        event_dict["remote_addr"] = request.remote_addr
        event_dict["method"] = request.method
        event_dict["path"] = request.path
    return event_dict


def setup_logging(app_name: str = "bulkmail", log_level: str = "INFO") -> None:
    """
    Configure structured logging.

    Args:
        app_name: Application name for log identification
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_request_context,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Standard library logging (repositories, third-party libraries)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    logging.getLogger(app_name).setLevel(level)

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.BoundLogger:
    """
    Get a structured logger instance

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog instance
    """
    return structlog.get_logger(name or __name__)


class SecurityLogger:
    """Dedicated security event logger"""

    def __init__(self):
        self.logger = get_logger("security")

    def log_authentication_attempt(self, username: str, success: bool, ip_address: str = None):
        self.logger.info(
            "Authentication attempt",
            username=username,
            success=success,
            ip_address=ip_address,
            event_type="auth_attempt"
        )

    def log_webhook_rejected(self, user_uuid: str, reason: str, ip_address: str = None):
        """Log an inbound provider notification that failed verification"""
        self.logger.warning(
            "Webhook rejected",
            user_uuid=user_uuid,
            reason=reason,
            ip_address=ip_address,
            event_type="webhook_rejected"
        )

    def log_token_rejected(self, token_type: str, ip_address: str = None):
        self.logger.warning(
            "Invalid or expired token",
            token_type=token_type,
            ip_address=ip_address,
            event_type="token_rejected"
        )

    def log_unsubscribe_rejected(self, user_uuid: str, email: str, ip_address: str = None):
        """Log an unsubscribe link whose token does not match the address"""
        self.logger.warning(
            "Unsubscribe token mismatch",
            user_uuid=user_uuid,
            email=email,
            ip_address=ip_address,
            event_type="unsubscribe_rejected"
        )


# Global logger instance
security_logger = SecurityLogger()
