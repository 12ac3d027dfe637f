"""
Application settings and configuration management.

This module centralizes all application configuration using Pydantic settings
for type validation and environment variable handling.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """
    Main application settings class.

    Uses Pydantic BaseSettings to automatically load configuration from:
    1. Environment variables
    2. .env file
    3. Default values defined here
    """

    # Database Configuration
    database_url: str = "sqlite:///./learnsync.db"

    # Redis Configuration
    redis_url: str = "redis://localhost:6379/0"

    # Celery Configuration
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"
    task_retry_countdown: int = 30
    task_max_retries: int = 3

    # Application Configuration
    debug: bool = True
    log_level: str = "INFO"

    # API Configuration
    api_v1_str: str = "/api/v1"
    project_name: str = "LearnSync"

    # Group hierarchy configuration
    # "redis" serializes reparenting across processes, "local" within one process
    lock_backend: str = "redis"
    lock_timeout_seconds: float = 30.0
    lock_blocking_timeout_seconds: float = 10.0
    hierarchy_max_depth: int = 64

    # Flower Monitoring Configuration
    flower_port: int = 5555
    flower_broker_api: Optional[str] = None

    class Config:
        """Pydantic configuration for settings loading."""
        env_file = ".env"
        case_sensitive = False


# Global settings instance
# This will be imported throughout the application for configuration access
settings = Settings()
