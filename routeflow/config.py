"""
Configuration settings for RouteFlow.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "RouteFlow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Tool gateway
    GIM_BASE_URL: str = ""
    TOOL_TIMEOUT: float = 60.0  # Seconds per external tool call
    ROUTER_TOOL_ID: str = "bot_assistant"

    # Seeds a local admin user so the API is usable out of the box
    BOOTSTRAP_API_KEY: Optional[str] = None
    BOOTSTRAP_WORKSPACE_ID: str = "default"

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
