"""Logging configuration for collaboration events."""

import logging
import sys
from datetime import datetime
from typing import List, Optional


class SyncEventFormatter(logging.Formatter):
    """Custom formatter appending collaboration fields to log lines."""

    SYNC_FIELDS = ('workspace_id', 'user_id', 'element_id', 'event_type')

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with collaboration-specific information."""
        if not hasattr(record, 'timestamp'):
            record.timestamp = datetime.now().isoformat()

        sync_fields = []
        for field in self.SYNC_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                sync_fields.append(f"{field}={value}")

        base_msg = super().format(record)

        if sync_fields:
            return f"{base_msg} [{', '.join(sync_fields)}]"

        return base_msg


def setup_sync_logging(log_level: str = "INFO") -> logging.Logger:
    """Set up logging for collaboration components.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured root logger for the package
    """
    logger = logging.getLogger("modelsync")
    level = getattr(logging, log_level.upper())
    logger.setLevel(level)

    # Avoid duplicate handlers; later calls only change the level
    if logger.handlers:
        for existing in logger.handlers:
            existing.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    formatter = SyncEventFormatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)

    return logger


def get_logger(name: str, log_level: str = "INFO") -> logging.Logger:
    """Get a configured logger for collaboration components.

    Args:
        name: Logger name (usually __name__)
        log_level: Logging level used when logging is not set up yet

    Returns:
        Configured logger instance
    """
    if not logging.getLogger("modelsync").handlers:
        setup_sync_logging(log_level)
    return logging.getLogger(name)


def log_connection_event(logger: logging.Logger, workspace_id: Optional[str],
                         event: str, message: str, **kwargs) -> None:
    """Log a connection state event.

    Args:
        logger: Logger instance
        workspace_id: Workspace the connection belongs to
        event: Kind of connection event (connected, reconnecting, retry, ...)
        message: Human-readable message
        **kwargs: Additional fields to include in log
    """
    extra = {
        'workspace_id': workspace_id,
        'event_type': f"connection_{event}",
        'timestamp': datetime.now().isoformat(),
        **kwargs
    }

    if event in ('connected', 'disconnected', 'connecting'):
        logger.info(message, extra=extra)
    elif event in ('reconnecting', 'retry', 'send_dropped', 'credential_missing'):
        logger.warning(message, extra=extra)
    elif event in ('exhausted', 'error'):
        logger.error(message, extra=extra)
    else:
        logger.debug(message, extra=extra)


def log_sync_event(logger: logging.Logger, event_type: str, element_id: Optional[str],
                   user_id: Optional[str], message: str, **kwargs) -> None:
    """Log an inbound or outbound collaboration event with structured data."""
    extra = {
        'event_type': event_type,
        'element_id': element_id,
        'user_id': user_id,
        'timestamp': datetime.now().isoformat(),
        **kwargs
    }

    logger.debug(message, extra=extra)


def log_conflict_event(logger: logging.Logger, element_type: str, element_id: str,
                       users: List[str], message: str, **kwargs) -> None:
    """Log an advisory conflict.

    Args:
        logger: Logger instance
        element_type: Kind of element in conflict (table, relationship, ...)
        element_id: ID of the element in conflict
        users: User IDs involved in the conflict
        message: Human-readable message
        **kwargs: Additional fields to include in log
    """
    users_str = ','.join(users) if users else 'unknown'
    extra = {
        'element_id': element_id,
        'event_type': 'conflict',
        'element_type': element_type,
        'involved_users': users_str,
        'timestamp': datetime.now().isoformat(),
        **kwargs
    }

    logger.warning(f"Conflict on {element_type} {element_id}: {message} [users={users_str}]", extra=extra)
