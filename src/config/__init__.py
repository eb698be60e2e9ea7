"""
Configuration management module for the expat news scraper.

This module provides configuration management capabilities including:
- Per-source scraping profiles and pacing parameters
- Run-level scraper settings
- Environment variable and file-based configuration loading
- Configuration validation
"""

from .models import PacingConfig, SelectorConfig, SourceProfile, ScraperSettings, SystemConfig
from .manager import ConfigManager, get_config_manager, get_system_config
from .sources import (
    SOURCE_PROFILES,
    SCRAPING_PRIORITY,
    LOCATION_KEYWORDS,
    get_source_profile,
    get_all_source_ids,
    order_by_priority
)
from .validation import (
    ConfigValidator,
    ValidationError,
    ConfigurationError,
    validate_configuration,
    validate_source_profile
)

__all__ = [
    # Data models
    "PacingConfig",
    "SelectorConfig",
    "SourceProfile",
    "ScraperSettings",
    "SystemConfig",

    # Configuration manager
    "ConfigManager",
    "get_config_manager",
    "get_system_config",

    # Source profiles
    "SOURCE_PROFILES",
    "SCRAPING_PRIORITY",
    "LOCATION_KEYWORDS",
    "get_source_profile",
    "get_all_source_ids",
    "order_by_priority",

    # Validation
    "ConfigValidator",
    "ValidationError",
    "ConfigurationError",
    "validate_configuration",
    "validate_source_profile"
]
