"""Configuration for the collaboration synchronization layer."""

import os
from dataclasses import dataclass, asdict
from typing import Dict, Any
from pathlib import Path


@dataclass
class SyncConfig:
    """Configuration settings for the collaboration connection."""

    # WebSocket settings
    websocket_base_url: str = "ws://localhost:8081"
    websocket_path_template: str = "/api/v1/ws/{workspace_id}"
    open_timeout_seconds: float = 10.0

    # Reconnection settings
    max_reconnection_attempts: int = 5
    initial_reconnection_delay_ms: float = 1000.0
    max_reconnection_delay_ms: float = 30000.0
    reconnection_jitter: bool = True

    # Status polling
    status_poll_interval_seconds: float = 1.0

    # Logging settings
    log_level: str = "INFO"
    log_sync_events: bool = True
    log_connection_events: bool = True
    log_conflict_events: bool = True

    def validate(self) -> None:
        """Validate configuration parameters."""
        errors = []

        if not self.websocket_base_url.startswith(("ws://", "wss://")):
            errors.append(f"WebSocket base URL must use ws:// or wss://, got {self.websocket_base_url}")

        if "{workspace_id}" not in self.websocket_path_template:
            errors.append(f"WebSocket path template must contain {{workspace_id}}, got {self.websocket_path_template}")

        if self.open_timeout_seconds <= 0:
            errors.append(f"Open timeout must be positive, got {self.open_timeout_seconds}")

        # Validate reconnection settings
        if self.max_reconnection_attempts < 0:
            errors.append(f"Max reconnection attempts must be non-negative, got {self.max_reconnection_attempts}")

        if self.initial_reconnection_delay_ms <= 0:
            errors.append(f"Initial reconnection delay must be positive, got {self.initial_reconnection_delay_ms}")

        if self.max_reconnection_delay_ms < self.initial_reconnection_delay_ms:
            errors.append(
                f"Max reconnection delay must be >= initial delay, got {self.max_reconnection_delay_ms} "
                f"< {self.initial_reconnection_delay_ms}"
            )

        if self.status_poll_interval_seconds <= 0:
            errors.append(f"Status poll interval must be positive, got {self.status_poll_interval_seconds}")

        # Validate log level
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            errors.append(f"Log level must be one of {valid_log_levels}, got {self.log_level}")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

    def build_endpoint(self, workspace_id: str) -> str:
        """Build the WebSocket URL for a workspace (without credentials)."""
        path = self.websocket_path_template.format(workspace_id=workspace_id)
        return f"{self.websocket_base_url.rstrip('/')}{path}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Create configuration from environment variables with validation."""
        try:
            config = cls(
                websocket_base_url=os.getenv("MODELSYNC_WS_BASE_URL", "ws://localhost:8081"),
                websocket_path_template=os.getenv("MODELSYNC_WS_PATH_TEMPLATE", "/api/v1/ws/{workspace_id}"),
                open_timeout_seconds=float(os.getenv("MODELSYNC_OPEN_TIMEOUT", "10.0")),

                max_reconnection_attempts=int(os.getenv("MODELSYNC_MAX_RECONNECTION_ATTEMPTS", "5")),
                initial_reconnection_delay_ms=float(os.getenv("MODELSYNC_INITIAL_RECONNECTION_DELAY_MS", "1000")),
                max_reconnection_delay_ms=float(os.getenv("MODELSYNC_MAX_RECONNECTION_DELAY_MS", "30000")),
                reconnection_jitter=os.getenv("MODELSYNC_RECONNECTION_JITTER", "true").lower() == "true",

                status_poll_interval_seconds=float(os.getenv("MODELSYNC_STATUS_POLL_INTERVAL", "1.0")),

                log_level=os.getenv("MODELSYNC_LOG_LEVEL", "INFO"),
                log_sync_events=os.getenv("MODELSYNC_LOG_SYNC_EVENTS", "true").lower() == "true",
                log_connection_events=os.getenv("MODELSYNC_LOG_CONNECTION_EVENTS", "true").lower() == "true",
                log_conflict_events=os.getenv("MODELSYNC_LOG_CONFLICT_EVENTS", "true").lower() == "true",
            )

            config.validate()
            return config

        except ValueError as e:
            if "could not convert" in str(e) or "invalid literal" in str(e):
                raise ValueError(f"Invalid environment variable format: {e}")
            raise

    @classmethod
    def from_file(cls, config_path: str) -> "SyncConfig":
        """Load configuration from a .env file."""
        from dotenv import load_dotenv

        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        # Load environment variables from file
        load_dotenv(config_file)

        return cls.from_env()
