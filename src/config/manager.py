"""
Configuration manager for loading and managing system configuration.

This module provides the ConfigManager class that builds the system
configuration from the built-in source registry, an optional custom
sources file, and environment variables, with validation of the result.
"""

import os
import json
from dataclasses import replace
from typing import Dict, Optional, Any
from pathlib import Path

from .logging import get_logger
from .models import SystemConfig, ScraperSettings, SourceProfile, PacingConfig, SelectorConfig
from .sources import (
    SOURCE_PROFILES,
    LOCATION_KEYWORDS,
    COMMON_EXCLUDED_URL_PATTERNS,
    DESKTOP_CHROME_WINDOWS,
    DESKTOP_CHROME_MAC
)
from .validation import validate_configuration


logger = get_logger(__name__)

_PACING_FIELDS = (
    "min_delay_ms",
    "max_delay_ms",
    "max_requests_per_minute",
    "max_concurrent_requests",
    "max_retries",
    "retry_delay_ms",
)


class ConfigManager:
    """Manages system configuration loading and validation."""

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_dir: Optional directory path for configuration files
        """
        self.config_dir = Path(config_dir) if config_dir else Path("config")
        self._system_config: Optional[SystemConfig] = None

    def load_configuration(self) -> SystemConfig:
        """
        Load complete system configuration from all sources.

        Returns:
            SystemConfig object with all loaded settings
        """
        if self._system_config is None:
            self._system_config = self._build_system_config()
        return self._system_config

    def _build_system_config(self) -> SystemConfig:
        """Build system configuration from all sources."""
        sources = self._load_source_profiles()
        settings = self._load_settings()

        enabled = os.getenv("SCRAPER_ENABLED_SOURCES")
        if enabled:
            wanted = [item.strip().lower() for item in enabled.split(",") if item.strip()]
            unknown = [source_id for source_id in wanted if source_id not in sources]
            if unknown:
                logger.warning("Ignoring unknown enabled sources", unknown_sources=unknown)
            sources = {source_id: sources[source_id] for source_id in wanted if source_id in sources}

        system_config = SystemConfig(sources=sources, settings=settings)

        validation_errors = validate_configuration(system_config, raise_on_error=False)
        if validation_errors:
            # Invalid sources are dropped, valid ones keep running
            invalid = {error.field.split("]")[0].replace("sources[", "") for error in validation_errors
                       if error.field.startswith("sources[")}
            logger.warning(
                "Configuration validation warnings",
                issue_count=len(validation_errors),
                issues=[str(error) for error in validation_errors[:5]],
                dropped_sources=sorted(invalid)
            )
            for source_id in invalid:
                system_config.sources.pop(source_id, None)

        return system_config

    def _load_settings(self) -> ScraperSettings:
        """Load run settings from environment variables."""
        settings = ScraperSettings()

        if log_level := os.getenv("LOG_LEVEL"):
            settings.log_level = log_level.upper()

        if enable_logging := os.getenv("ENABLE_STRUCTURED_LOGGING"):
            settings.enable_structured_logging = enable_logging.lower() in ("true", "1", "yes")

        if max_articles := os.getenv("SCRAPER_MAX_ARTICLES"):
            try:
                value = int(max_articles)
                if value > 0:
                    settings.max_articles_per_run = value
            except ValueError:
                logger.warning("Invalid SCRAPER_MAX_ARTICLES, keeping default", value=max_articles)

        if deadline := os.getenv("SCRAPER_RUN_DEADLINE_SECONDS"):
            try:
                value = float(deadline)
                if value > 0:
                    settings.run_deadline_seconds = value
            except ValueError:
                logger.warning("Invalid SCRAPER_RUN_DEADLINE_SECONDS, keeping default", value=deadline)

        return settings

    def _load_source_profiles(self) -> Dict[str, SourceProfile]:
        """Load source profiles from the registry and the custom sources file."""
        profiles = dict(SOURCE_PROFILES)

        custom_sources_file = self.config_dir / "custom_sources.json"
        if not custom_sources_file.exists():
            return profiles

        try:
            with open(custom_sources_file, 'r', encoding='utf-8') as f:
                custom_configs = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Could not read custom sources file", path=str(custom_sources_file), error=str(e))
            return profiles

        for source_id, config_data in custom_configs.items():
            source_id = source_id.strip().lower()
            try:
                if source_id in profiles:
                    profiles[source_id] = self._override_profile(profiles[source_id], config_data)
                else:
                    profiles[source_id] = self._profile_from_dict(source_id, config_data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid custom source", source_id=source_id, error=str(e))

        return profiles

    def _override_profile(self, profile: SourceProfile, config_data: Dict[str, Any]) -> SourceProfile:
        """Apply pacing and URL overrides to a built-in profile."""
        changes: Dict[str, Any] = {}
        if "pacing" in config_data:
            changes["pacing"] = self._pacing_from_dict(config_data["pacing"], base=profile.pacing)
        if "user_agents" in config_data:
            changes["user_agents"] = tuple(config_data["user_agents"])
        if "discovery_paths" in config_data:
            changes["discovery_paths"] = tuple(config_data["discovery_paths"])
        return replace(profile, **changes)

    def _profile_from_dict(self, source_id: str, config_data: Dict[str, Any]) -> SourceProfile:
        """Build a new profile from custom source data."""
        selectors = config_data["selectors"]
        location_keywords = config_data.get("location_keywords")

        return SourceProfile(
            source_id=source_id,
            name=config_data.get("name", source_id),
            name_en=config_data.get("name_en", source_id),
            base_url=config_data["base_url"],
            selectors=SelectorConfig.from_strings(
                title=selectors["title"],
                content=selectors["content"],
                author=selectors.get("author"),
                published_at=selectors.get("published_at"),
                category=selectors.get("category")
            ),
            location_keywords=(
                {region: tuple(words) for region, words in location_keywords.items()}
                if location_keywords else LOCATION_KEYWORDS
            ),
            pacing=self._pacing_from_dict(config_data.get("pacing", {})),
            user_agents=tuple(config_data.get("user_agents", (DESKTOP_CHROME_WINDOWS, DESKTOP_CHROME_MAC))),
            discovery_paths=tuple(config_data.get("discovery_paths", ())),
            article_url_patterns=tuple(config_data.get("article_url_patterns", ())),
            excluded_url_patterns=tuple(config_data.get("excluded_url_patterns", COMMON_EXCLUDED_URL_PATTERNS)),
            credibility_score=int(config_data.get("credibility_score", 50)),
            language=config_data.get("language", "zh")
        )

    @staticmethod
    def _pacing_from_dict(config_dict: Dict[str, Any], base: Optional[PacingConfig] = None) -> PacingConfig:
        """Update pacing parameters from dictionary data."""
        values = {key: int(config_dict[key]) for key in _PACING_FIELDS if key in config_dict}
        return replace(base or PacingConfig(), **values)

    def get_source_profile(self, source_id: str) -> Optional[SourceProfile]:
        """
        Get the configured profile for a source.

        Args:
            source_id: Source identifier

        Returns:
            SourceProfile, or None if the source is unknown or disabled
        """
        return self.load_configuration().get_source(source_id.strip().lower())

    def reload_configuration(self) -> SystemConfig:
        """Force reload of configuration from all sources."""
        self._system_config = None
        return self.load_configuration()

    def validate_current_configuration(self, raise_on_error: bool = False) -> bool:
        """
        Validate the current configuration.

        Args:
            raise_on_error: If True, raise ConfigurationError on validation failure

        Returns:
            True if configuration is valid, False otherwise

        Raises:
            ConfigurationError: If validation fails and raise_on_error is True
        """
        config = self.load_configuration()
        errors = validate_configuration(config, raise_on_error=raise_on_error)
        return len(errors) == 0


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(os.getenv("SCRAPER_CONFIG_DIR"))
    return _config_manager


def get_system_config() -> SystemConfig:
    """Get the current system configuration."""
    return get_config_manager().load_configuration()
