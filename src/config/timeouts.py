"""
Timeout configuration for all outbound requests.

This module provides centralized timeout management for page fetches and
section-page discovery, with values loaded from the environment.
"""

from dataclasses import dataclass
from typing import Optional
import os


@dataclass
class TimeoutConfig:
    """Timeout configuration for outbound HTTP operations."""

    # Page fetch timeouts
    http_connect_timeout: int = 10  # Connection establishment timeout
    http_read_timeout: int = 30     # Data read timeout

    # Section page discovery timeouts
    discovery_connect_timeout: int = 5
    discovery_read_timeout: int = 15

    @classmethod
    def from_environment(cls) -> 'TimeoutConfig':
        """Create timeout configuration from environment variables."""
        return cls(
            http_connect_timeout=int(os.getenv('HTTP_CONNECT_TIMEOUT', '10')),
            http_read_timeout=int(os.getenv('HTTP_READ_TIMEOUT', '30')),
            discovery_connect_timeout=int(os.getenv('DISCOVERY_CONNECT_TIMEOUT', '5')),
            discovery_read_timeout=int(os.getenv('DISCOVERY_READ_TIMEOUT', '15'))
        )

    def get_http_timeout_tuple(self) -> tuple:
        """Get HTTP timeout as (connect, read) tuple for requests library."""
        return (self.http_connect_timeout, self.http_read_timeout)

    def validate(self) -> None:
        """Validate timeout configuration values."""
        if self.http_connect_timeout <= 0:
            raise ValueError("HTTP connect timeout must be positive")
        if self.http_read_timeout <= 0:
            raise ValueError("HTTP read timeout must be positive")
        if self.discovery_connect_timeout <= 0:
            raise ValueError("Discovery connect timeout must be positive")
        if self.discovery_read_timeout <= 0:
            raise ValueError("Discovery read timeout must be positive")


class TimeoutManager:
    """
    Centralized timeout management for the application.

    Provides timeout configuration for all outbound requests.
    """

    def __init__(self, config: Optional[TimeoutConfig] = None):
        """
        Initialize timeout manager.

        Args:
            config: Optional timeout configuration. If None, loads from environment.
        """
        self.config = config or TimeoutConfig.from_environment()
        self.config.validate()

    def get_http_timeout(self, operation_type: str = "default") -> tuple:
        """
        Get HTTP timeout configuration for specific operation types.

        Args:
            operation_type: Type of HTTP operation (scraping, discovery)

        Returns:
            Tuple of (connect_timeout, read_timeout)
        """
        if operation_type == "discovery":
            return (self.config.discovery_connect_timeout, self.config.discovery_read_timeout)
        return self.config.get_http_timeout_tuple()


# Global timeout manager instance
_timeout_manager: Optional[TimeoutManager] = None


def get_timeout_manager() -> TimeoutManager:
    """Get the global timeout manager instance."""
    global _timeout_manager
    if _timeout_manager is None:
        _timeout_manager = TimeoutManager()
    return _timeout_manager


def configure_timeouts(config: Optional[TimeoutConfig] = None) -> None:
    """Configure global timeout manager."""
    global _timeout_manager
    _timeout_manager = TimeoutManager(config)
