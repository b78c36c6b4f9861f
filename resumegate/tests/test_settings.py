"""Settings parsing and validation."""

import pytest
from pydantic import ValidationError

from resumegate.config import Settings


def _settings(**kwargs):
    return Settings(_env_file=None, **kwargs)


def test_defaults():
    settings = _settings()

    assert settings.limits_backend == "memory"
    assert settings.burst_interval_ms == 100
    assert settings.suspicious_divisor == 3
    assert settings.block_threshold == 3
    assert settings.permission_cache_ttl_seconds == 1800
    assert settings.trial_duration_days == 14


def test_environment_normalised():
    assert _settings(environment=" Production ").is_production


def test_env_vars_are_read(monkeypatch):
    monkeypatch.setenv("BURST_INTERVAL_MS", "250")
    monkeypatch.setenv("LIMITS_BACKEND", "redis")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")

    settings = Settings(_env_file=None)

    assert settings.burst_interval_ms == 250
    assert settings.limits_backend == "redis"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"environment": "moon"},
        {"log_level": "chatty"},
        {"limits_backend": "memcached"},
        {"limits_backend": "redis", "redis_url": ""},
        {"suspicious_divisor": 0},
        {"track_size": 1},
    ],
)
def test_invalid_settings(kwargs):
    with pytest.raises(ValidationError):
        _settings(**kwargs)
