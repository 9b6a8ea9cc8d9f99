"""Test domain configuration defaults and environment overrides."""
import dataclasses

import pytest

from patterns.domain_config import StorefrontConfig


def test_defaults():
    config = StorefrontConfig.default()
    assert config.rentals.two_weeks_days == 14
    assert config.resilience.max_attempts == 3
    assert config.reporting.recent_activity_limit == 10


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("STOREFRONT_MAX_ATTEMPTS", "7")
    monkeypatch.setenv("STOREFRONT_BACKOFF_BASE", "0.2")
    monkeypatch.setenv("STOREFRONT_RECENT_ACTIVITY_LIMIT", "25")

    config = StorefrontConfig.from_env()

    assert config.resilience.max_attempts == 7
    assert config.resilience.backoff_base == 0.2
    assert config.reporting.recent_activity_limit == 25
    assert config.rentals.three_months_months == 3


def test_config_is_frozen():
    config = StorefrontConfig.default()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.resilience.max_attempts = 10


def test_dead_letter_limit_from_env(monkeypatch):
    assert StorefrontConfig.default().resilience.dead_letter_limit == 1000

    monkeypatch.setenv("STOREFRONT_DEAD_LETTER_LIMIT", "50")
    assert StorefrontConfig.from_env().resilience.dead_letter_limit == 50
