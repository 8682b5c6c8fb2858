import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import BaseModel, Field

from availability.core.config import settings


class AuditEntry(BaseModel):
    """Model for structured audit log entries"""
    timestamp: str
    action: str
    user_id: Optional[str] = None
    resource_type: str
    details: Dict[str, Any] = Field(default_factory=dict)
    status: str


class AuditLogger:
    def __init__(self):
        """Initialize the audit logger with rotation and retention policies"""
        # Remove default logger
        logger.remove()

        # Configure console logging for development
        if settings.ENVIRONMENT.lower() != "production":
            logger.add(
                sys.stderr,
                format="{time} | {level} | {message}",
                level=settings.LOG_LEVEL
            )

        # Configure file logging with rotation and retention
        logger.add(
            settings.AUDIT_LOG_PATH,
            rotation="100 MB",  # Rotate when the file reaches 100MB
            retention="90 days",  # Keep logs for 90 days
            compression="zip",  # Compress rotated logs
            serialize=True,  # JSON serialization for structured logging
            backtrace=True,
            diagnose=True,
            enqueue=True,  # Thread-safe logging
            level="INFO"
        )

    def log(
        self,
        action: str,
        resource_type: str,
        status: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Create an immutable audit log entry

        Args:
            action: The action being performed (e.g., "free_slot_search", "conflict_check")
            resource_type: Type of resource being accessed (e.g., "calendar", "study_plan")
            status: Outcome of the action (e.g., "success", "failure", "not_found")
            user_id: ID of the user performing the action
            details: Additional context about the action
        """
        if details is None:
            details = {}

        entry = AuditEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            user_id=user_id,
            resource_type=resource_type,
            details=details,
            status=status
        )

        # Log the structured entry
        logger.info(entry.model_dump_json())

        # For failures, also surface an error line in development
        if status == "failure" and settings.ENVIRONMENT.lower() != "production":
            logger.error(f"AUDIT: {entry.model_dump_json()}")

# Create a singleton instance
audit_logger = AuditLogger()
