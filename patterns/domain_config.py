"""Dataclass-based domain configuration pattern.

Each vertical defines its thresholds, limits, and feature flags as a
frozen dataclass. This gives you:
- Type safety (IDE autocompletion, mypy checking)
- Default values (sensible out-of-the-box)
- Immutability (frozen=True prevents accidental mutation)
- Easy overrides (from env vars, config files, or deployment settings)

Example domain: a storefront selling and renting books.
"""

import os
from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Nested config sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RentalConfig:
    """Rental term lengths."""

    two_weeks_days: int = 14
    one_month_months: int = 1
    three_months_months: int = 3


@dataclass(frozen=True)
class ResilienceConfig:
    """Bounded retry for transient store failures."""

    max_attempts: int = 3
    backoff_base: float = 0.05  # seconds
    backoff_max: float = 1.0
    dead_letter_limit: int = 1000


@dataclass(frozen=True)
class ReportingConfig:
    """Admin dashboard limits."""

    recent_activity_limit: int = 10


# ---------------------------------------------------------------------------
# Top-level domain config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StorefrontConfig:
    """Complete configuration for the storefront vertical.

    Usage::

        config = StorefrontConfig.default()
        policy = RetryPolicy.from_config(config.resilience, retry_on=(TransientStoreError,))
    """

    rentals: RentalConfig = field(default_factory=RentalConfig)
    resilience: ResilienceConfig = field(default_factory=ResilienceConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)

    @classmethod
    def default(cls) -> "StorefrontConfig":
        """Create config with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "STOREFRONT_") -> "StorefrontConfig":
        """Create config from environment variables.

        Example: STOREFRONT_MAX_ATTEMPTS=5
        """
        resilience = {}
        max_attempts = os.getenv(f"{prefix}MAX_ATTEMPTS")
        if max_attempts:
            resilience["max_attempts"] = int(max_attempts)
        backoff_base = os.getenv(f"{prefix}BACKOFF_BASE")
        if backoff_base:
            resilience["backoff_base"] = float(backoff_base)
        dead_letter_limit = os.getenv(f"{prefix}DEAD_LETTER_LIMIT")
        if dead_letter_limit:
            resilience["dead_letter_limit"] = int(dead_letter_limit)

        reporting = {}
        recent = os.getenv(f"{prefix}RECENT_ACTIVITY_LIMIT")
        if recent:
            reporting["recent_activity_limit"] = int(recent)

        overrides = {
            "resilience": ResilienceConfig(**resilience),
            "reporting": ReportingConfig(**reporting),
        }
        return cls(**overrides)
