"""Application Settings and Configuration.

This module provides application-wide settings that combine configuration
from the configuration manager with application-specific defaults.

Security Impact:
    - Settings are loaded from secure configuration sources
    - Sensitive values are never logged
    - Defaults are provided for development convenience
"""

import os
from typing import Optional

from clinical_gateway import __version__
from clinical_gateway.infrastructure.config_manager import (
    AuthConfig,
    ConfigManager,
    GatewayConfig,
    ObjectTypeConfig,
    PlatformConfig,
)

# Application metadata
APP_NAME = "Clinical Gateway"
APP_VERSION = __version__


class Settings:
    """Application settings loaded from configuration manager and environment.

    Configuration groups are loaded lazily on first access so importing the
    application never fails on incomplete configuration; readiness checks
    report what is missing instead.
    """

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        """Initialize settings from configuration manager and environment.

        Parameters:
            config_manager: Explicit configuration (defaults to the environment)
        """
        self._config_manager = config_manager

        self.app_name = os.getenv("GATEWAY_APP_NAME", APP_NAME)
        self.version = APP_VERSION
        self.environment = os.getenv("GATEWAY_ENV", "development")

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.json_logs = os.getenv("JSON_LOGS", "false").lower() == "true"

        # Security headers
        self.enable_hsts = os.getenv("ENABLE_HSTS", "false").lower() == "true"
        self.cors_origins = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
            if origin.strip()
        ]

    @property
    def config_manager(self) -> ConfigManager:
        """Get configuration manager instance.

        Returns:
            ConfigManager instance
        """
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def platform(self) -> PlatformConfig:
        return self.config_manager.get_platform_config()

    @property
    def object_types(self) -> ObjectTypeConfig:
        return self.config_manager.get_object_type_config()

    @property
    def auth(self) -> AuthConfig:
        return self.config_manager.get_auth_config()

    @property
    def gateway(self) -> GatewayConfig:
        return self.config_manager.get_gateway_config()


# Global settings instance
settings = Settings()
