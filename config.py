"""Configuration module for Smart Reminder Service.

This module provides configuration settings using Pydantic Settings.
Environment variables can be used to override default values.
"""

from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings for Smart Reminder Service.

    All settings can be overridden via environment variables.
    Example: export GOOGLE_MAPS_API_KEY="..."
    """

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./reminders.db"
    """Database connection URL. Default: SQLite file in current directory"""

    # API Server Configuration
    API_HOST: str = "0.0.0.0"
    """API server host address"""

    API_PORT: int = 8005
    """API server port"""

    # MCP Server Configuration
    MCP_HOST: str = "127.0.0.1"
    """MCP server host address"""

    MCP_PORT: int = 8006
    """MCP server port for SSE transport (separate from REST API)"""

    MCP_TRANSPORT: str = "sse"
    """MCP transport type: 'stdio' for local, 'sse' for network access"""

    # General Configuration
    TIMEZONE: str = "UTC"
    """Timezone used to resolve relative date phrases ("tomorrow", "Sunday")"""

    LOG_DIR: str = "logs"
    """Directory for rotating log files"""

    # Natural language parsing
    DATE_LANGUAGES: List[str] = ["en"]
    """Languages the date-phrase recognizer is allowed to detect"""

    # Google Maps (geocoding + places)
    GOOGLE_MAPS_API_KEY: str = ""
    """API key for the Google Maps web services. Empty disables geocoding"""

    GOOGLE_MAPS_BASE_URL: str = "https://maps.googleapis.com/maps/api"
    """Base URL for the Google Maps web services"""

    GEOCODE_TIMEOUT: float = 10.0
    """Timeout in seconds for a single geocoding request"""

    # Location Worker Configuration
    WORKER_ENABLED: bool = True
    """Enable/disable the location worker inside the API process"""

    LOCATION_QUEUE_MAXSIZE: int = 100
    """Maximum number of pending location samples before new ones are dropped"""

    # Push notifications
    NOTIFICATION_API_URL: str = ""
    """Base URL of the push notification gateway. Empty means log-only"""

    NOTIFICATION_TIMEOUT: float = 30.0
    """Timeout in seconds for a push notification request"""

    class Config:
        """Pydantic config"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
