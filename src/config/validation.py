"""
Configuration validation utilities.

This module provides validation functions and error classes for configuration
management, ensuring that every source profile is complete and consistent
before a scraping run is allowed to issue its first request.
"""

from typing import List, Any
import re
from urllib.parse import urlparse

from .models import SourceProfile, ScraperSettings, SystemConfig


_SIMPLE_SELECTOR = re.compile(r'^[.#]?[A-Za-z_][\w-]*$')


class ConfigurationError(Exception):
    """Base exception for configuration-related errors."""

    error_type = "CONFIGURATION_ERROR"
    retryable = False


class ValidationError(ConfigurationError):
    """Exception raised when configuration validation fails."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"Validation error for '{field}': {message}")


class ConfigValidator:
    """Validates configuration objects and provides detailed error reporting."""

    @staticmethod
    def validate_source_profile(profile: SourceProfile) -> List[ValidationError]:
        """
        Validate a SourceProfile object.

        Args:
            profile: SourceProfile to validate

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not profile.source_id or not profile.source_id.strip():
            errors.append(ValidationError("source_id", "Source ID cannot be empty"))

        if not profile.base_url or not ConfigValidator._is_valid_url(profile.base_url):
            errors.append(ValidationError("base_url", "Invalid URL format", profile.base_url))

        # Title and content are required fields, everything else is optional
        if not profile.selectors.title:
            errors.append(ValidationError("selectors.title", "Title selectors cannot be empty"))
        if not profile.selectors.content:
            errors.append(ValidationError("selectors.content", "Content selectors cannot be empty"))

        for field_name in ("title", "content", "author", "published_at", "category"):
            for i, selector in enumerate(getattr(profile.selectors, field_name)):
                if not ConfigValidator._is_valid_selector(selector):
                    errors.append(ValidationError(
                        f"selectors.{field_name}[{i}]",
                        "Invalid selector syntax",
                        selector
                    ))

        if not profile.location_keywords or not any(profile.location_keywords.values()):
            errors.append(ValidationError("location_keywords", "At least one location keyword is required"))

        if not profile.user_agents:
            errors.append(ValidationError("user_agents", "At least one user agent is required"))
        elif any(not agent or not agent.strip() for agent in profile.user_agents):
            errors.append(ValidationError("user_agents", "User agents cannot be blank"))

        pacing = profile.pacing
        if pacing.min_delay_ms < 0:
            errors.append(ValidationError("pacing.min_delay_ms", "Minimum delay must be non-negative", pacing.min_delay_ms))
        if pacing.max_delay_ms < pacing.min_delay_ms:
            errors.append(ValidationError(
                "pacing.max_delay_ms",
                "Maximum delay must be greater than or equal to minimum delay",
                pacing.max_delay_ms
            ))
        if pacing.max_requests_per_minute <= 0:
            errors.append(ValidationError(
                "pacing.max_requests_per_minute",
                "Max requests per minute must be positive",
                pacing.max_requests_per_minute
            ))
        if pacing.max_concurrent_requests <= 0:
            errors.append(ValidationError(
                "pacing.max_concurrent_requests",
                "Max concurrent requests must be positive",
                pacing.max_concurrent_requests
            ))
        if pacing.max_retries < 0:
            errors.append(ValidationError("pacing.max_retries", "Max retries must be non-negative", pacing.max_retries))
        elif pacing.max_retries > 10:
            errors.append(ValidationError("pacing.max_retries", "Max retries should not exceed 10", pacing.max_retries))
        if pacing.retry_delay_ms < 0:
            errors.append(ValidationError("pacing.retry_delay_ms", "Retry delay must be non-negative", pacing.retry_delay_ms))

        for field_name in ("article_url_patterns", "excluded_url_patterns"):
            for i, pattern in enumerate(getattr(profile, field_name)):
                try:
                    re.compile(pattern)
                except re.error as e:
                    errors.append(ValidationError(f"{field_name}[{i}]", f"Invalid pattern: {e}", pattern))

        if not profile.article_url_patterns:
            errors.append(ValidationError("article_url_patterns", "At least one article URL pattern is required"))

        return errors

    @staticmethod
    def validate_settings(settings: ScraperSettings) -> List[ValidationError]:
        """
        Validate run-level scraper settings.

        Args:
            settings: ScraperSettings to validate

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if settings.max_articles_per_run <= 0:
            errors.append(ValidationError(
                "max_articles_per_run",
                "Max articles per run must be positive",
                settings.max_articles_per_run
            ))

        if settings.run_deadline_seconds is not None and settings.run_deadline_seconds <= 0:
            errors.append(ValidationError(
                "run_deadline_seconds",
                "Run deadline must be positive",
                settings.run_deadline_seconds
            ))

        if settings.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            errors.append(ValidationError("log_level", "Invalid log level", settings.log_level))

        return errors

    @staticmethod
    def validate_system_config(config: SystemConfig) -> List[ValidationError]:
        """
        Validate complete SystemConfig object.

        Args:
            config: SystemConfig to validate

        Returns:
            List of validation errors (empty if valid)
        """
        errors = ConfigValidator.validate_settings(config.settings)

        for source_id, profile in config.sources.items():
            # Prefix errors with the source for clarity
            for error in ConfigValidator.validate_source_profile(profile):
                errors.append(ValidationError(
                    f"sources[{source_id}].{error.field}",
                    error.message,
                    error.value
                ))

        return errors

    @staticmethod
    def _is_valid_selector(selector: str) -> bool:
        """Basic validation of selector syntax."""
        if not selector or not selector.strip():
            return False

        # .class, #id or tag, optionally chained as descendants
        return all(_SIMPLE_SELECTOR.match(part) for part in selector.split())

    @staticmethod
    def _is_valid_url(url: str) -> bool:
        """Check if URL has valid format."""
        try:
            result = urlparse(url)
            return all([result.scheme, result.netloc]) and result.scheme in ['http', 'https']
        except ValueError:
            return False


def validate_source_profile(profile: SourceProfile) -> None:
    """
    Validate a source profile, raising on the first problem found.

    Args:
        profile: SourceProfile to validate

    Raises:
        ValidationError: If the profile is malformed
    """
    errors = ConfigValidator.validate_source_profile(profile)
    if errors:
        raise errors[0]


def validate_configuration(config: SystemConfig, raise_on_error: bool = False) -> List[ValidationError]:
    """
    Validate a complete system configuration.

    Args:
        config: SystemConfig to validate
        raise_on_error: If True, raise ConfigurationError on validation failure

    Returns:
        List of validation errors (empty if valid)

    Raises:
        ConfigurationError: If validation fails and raise_on_error is True
    """
    errors = ConfigValidator.validate_system_config(config)

    if errors and raise_on_error:
        error_messages = [str(error) for error in errors]
        raise ConfigurationError("Configuration validation failed:\n" + "\n".join(error_messages))

    return errors
