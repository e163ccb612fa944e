"""
Configuration module for the Paysera payment app.

Loads settings from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class PayseraConfig:
    """Paysera gateway endpoint configuration."""
    payment_url: str


@dataclass
class AppConfig:
    """Public URLs of the app and the storefront."""
    api_base_url: str
    storefront_url: str


@dataclass
class SaleorConfig:
    """Platform API client configuration."""
    request_timeout: int


@dataclass
class DatabaseConfig:
    """Database connection configuration."""
    url: str


@dataclass
class APIConfig:
    """API server configuration."""
    host: str
    port: int


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str
    file: Optional[str]


@dataclass
class ServiceConfig:
    """Service-level configuration."""
    name: str
    shutdown_timeout: int


class Config:
    """
    Main configuration class that aggregates all config sections.

    Usage:
        from config import config

        print(config.paysera.payment_url)
        print(config.app.storefront_url)
    """

    def __init__(self):
        self._load_config()

    def _load_config(self):
        """Load all configuration from environment variables."""

        # Paysera configuration
        self.paysera = PayseraConfig(
            payment_url=os.getenv('PAYSERA_PAYMENT_URL', 'https://www.paysera.com/pay/')
        )

        # App URLs (empty base URL means derive it from the request host)
        self.app = AppConfig(
            api_base_url=os.getenv('APP_API_BASE_URL', '').rstrip('/'),
            storefront_url=os.getenv('STOREFRONT_URL', '').rstrip('/')
        )

        # Platform API configuration
        self.saleor = SaleorConfig(
            request_timeout=int(os.getenv('SALEOR_REQUEST_TIMEOUT', '30'))
        )

        # Database configuration
        self.database = DatabaseConfig(
            url=os.getenv('DATABASE_URL', 'sqlite:///./paysera_app.db')
        )

        # API configuration
        self.api = APIConfig(
            host=os.getenv('API_HOST', '0.0.0.0'),
            port=int(os.getenv('API_PORT', '8000'))
        )

        # Logging configuration
        self.logging = LoggingConfig(
            level=os.getenv('LOG_LEVEL', 'INFO'),
            file=os.getenv('LOG_FILE')
        )

        # Service configuration
        self.service = ServiceConfig(
            name=os.getenv('SERVICE_NAME', 'PayseraPaymentApp'),
            shutdown_timeout=int(os.getenv('SHUTDOWN_TIMEOUT', '30'))
        )

    def validate(self) -> List[str]:
        """
        Validate required configuration values.

        Returns:
            List of validation error messages (empty if all valid)
        """
        errors = []

        if not self.paysera.payment_url.startswith(('http://', 'https://')):
            errors.append("PAYSERA_PAYMENT_URL must be a valid HTTP(S) URL")

        if not self.database.url:
            errors.append("DATABASE_URL is required")

        if not 0 < self.api.port < 65536:
            errors.append("API_PORT must be between 1 and 65535")

        if self.app.api_base_url and not self.app.api_base_url.startswith(('http://', 'https://')):
            errors.append("APP_API_BASE_URL must be a valid HTTP(S) URL")

        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0


# Global configuration instance
config = Config()
