"""Tests for settings."""

import logging

from estatetoken.config import Settings, configure_logging


class TestSettings:
    """Test environment-driven settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.retry_max_attempts == 3
        assert settings.breaker_failure_threshold == 5
        assert settings.default_timeout == 30.0

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("ESTATETOKEN_RETRY_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("ESTATETOKEN_BREAKER_RESET_TIMEOUT", "12.5")
        monkeypatch.setenv("ESTATETOKEN_RETRY_RETRYABLE_ERRORS", '["network", "503"]')

        settings = Settings(_env_file=None)

        assert settings.retry_max_attempts == 5
        assert settings.breaker_reset_timeout == 12.5
        assert settings.retry_retryable_errors == ["network", "503"]
        assert settings.log_level == "DEBUG"
        assert settings.metrics_enabled is False

    def test_retry_policy(self):
        def on_retry(attempt, error):
            pass

        settings = Settings(
            _env_file=None,
            retry_max_attempts=4,
            retry_base_delay=0.5,
            retry_retryable_errors=["timeout"],
        )
        policy = settings.retry_policy(on_retry=on_retry)

        assert policy.max_attempts == 4
        assert policy.base_delay == 0.5
        assert policy.max_delay == 10.0
        assert policy.retryable_errors == ("timeout",)
        assert policy.on_retry is on_retry

    def test_circuit_breaker_config(self):
        settings = Settings(_env_file=None, breaker_failure_threshold=2, breaker_successes_to_close=1)
        config = settings.circuit_breaker_config()

        assert config.failure_threshold == 2
        assert config.reset_timeout == 60.0
        assert config.successes_to_close == 1


class TestConfigureLogging:
    def test_sets_root_level(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        configure_logging("warning")

        assert calls[0]["level"] == logging.WARNING
