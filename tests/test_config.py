"""
OSS Cluster Configuration and Error Tests
"""

from __future__ import annotations

import pytest

from osscluster.config import (
    ClusterConfig,
    ClusterSettings,
    EndpointConfig,
    get_settings,
    load_cluster_config,
    reset_settings,
    set_settings,
)
from osscluster.errors import (
    BackendError,
    ClusterExhaustedError,
    ConfigurationError,
    is_retryable,
    is_terminal_status,
    status_of,
)
from osscluster.types import SchedulingPolicy


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings()
    yield
    reset_settings()


# =============================================================================
# Configuration Tests
# =============================================================================


class TestClusterConfig:
    """Test cluster configuration validation."""

    def test_defaults(self):
        config = ClusterConfig(cluster=[{"endpoint": "a"}])
        assert config.schedule == SchedulingPolicy.ROUND_ROBIN
        assert config.heartbeat_interval_ms == 10000
        assert config.heartbeat_interval == 10.0
        assert config.probe_attempts == 3
        assert config.timeout is None

    def test_endpoint_extra_keys_preserved(self):
        endpoint = EndpointConfig(endpoint="a", secure=True, internal=False)
        assert endpoint.model_dump(exclude_none=True) == {
            "endpoint": "a",
            "secure": True,
            "internal": False,
        }
        assert endpoint.display_name == "a"
        assert EndpointConfig(bucket="b").display_name == "b"

    def test_endpoint_options_do_not_override(self):
        config = ClusterConfig(
            cluster=[{"endpoint": "a"}, {"endpoint": "b", "transport": "custom"}],
            transport="default",
        )
        assert config.endpoint_options(0)["transport"] == "default"
        assert config.endpoint_options(1)["transport"] == "custom"

    def test_common_options_passed_through_unvalidated(self):
        config = load_cluster_config({
            "cluster": [{"endpoint": "a"}, {"endpoint": "b"}],
            "timeout": "60s",
        })
        assert config.timeout == "60s"
        assert config.endpoint_options(0)["timeout"] == "60s"
        assert config.endpoint_options(1)["timeout"] == "60s"

    def test_load_passthrough(self):
        config = ClusterConfig(cluster=[{"endpoint": "a"}])
        assert load_cluster_config(config) is config

    def test_load_from_mapping(self):
        config = load_cluster_config({
            "cluster": [{"endpoint": "a"}, {"endpoint": "b"}],
            "schedule": "masterSlave",
            "heartbeat_interval_ms": 500,
        })
        assert len(config.cluster) == 2
        assert config.schedule == SchedulingPolicy.MASTER_SLAVE
        assert config.heartbeat_interval == 0.5

    @pytest.mark.parametrize("options", [
        None,
        [],
        {},
        {"cluster": None},
        {"cluster": []},
        {"cluster": {"endpoint": "a"}},
    ])
    def test_missing_cluster(self, options):
        with pytest.raises(ConfigurationError):
            load_cluster_config(options)

    def test_invalid_values_become_configuration_errors(self):
        with pytest.raises(ConfigurationError):
            load_cluster_config({"cluster": [{"endpoint": "a"}], "schedule": "random"})
        with pytest.raises(ConfigurationError):
            load_cluster_config({"cluster": [{"endpoint": "a"}], "heartbeat_interval_ms": 0})

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            load_cluster_config({"cluster": []})


class TestClusterSettings:
    """Test environment-driven defaults."""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("OSS_CLUSTER_SCHEDULE", "masterSlave")
        monkeypatch.setenv("OSS_CLUSTER_HEARTBEAT_INTERVAL_MS", "2500")
        config = load_cluster_config({"cluster": [{"endpoint": "a"}]})
        assert config.schedule == SchedulingPolicy.MASTER_SLAVE
        assert config.heartbeat_interval_ms == 2500

    def test_explicit_options_win(self, monkeypatch):
        monkeypatch.setenv("OSS_CLUSTER_SCHEDULE", "masterSlave")
        config = load_cluster_config({
            "cluster": [{"endpoint": "a"}],
            "schedule": "roundRobin",
        })
        assert config.schedule == SchedulingPolicy.ROUND_ROBIN

    def test_none_falls_back_to_defaults(self):
        config = load_cluster_config({
            "cluster": [{"endpoint": "a"}],
            "schedule": None,
            "heartbeat_interval_ms": None,
        })
        assert config.schedule == SchedulingPolicy.ROUND_ROBIN
        assert config.heartbeat_interval_ms == 10000

    def test_set_settings(self):
        settings = ClusterSettings(probe_prefix="._probe")
        set_settings(settings)
        assert get_settings() is settings
        config = load_cluster_config({"cluster": [{"endpoint": "a"}]})
        assert config.probe_prefix == "._probe"


# =============================================================================
# Error Classification Tests
# =============================================================================


class TestErrorClassification:
    """Test status-based error classification."""

    @pytest.mark.parametrize("status,terminal", [
        (200, True),
        (304, True),
        (404, True),
        (412, True),
        (499, True),
        (500, False),
        (503, False),
        (199, False),
        (None, False),
    ])
    def test_terminal_status(self, status, terminal):
        assert is_terminal_status(status) is terminal

    def test_status_of_foreign_exception(self):
        exc = RuntimeError("boom")
        assert status_of(exc) is None
        exc.status = 403
        assert status_of(exc) == 403
        assert is_retryable(exc) is False

    def test_status_of_ignores_non_integers(self):
        exc = RuntimeError("boom")
        exc.status = "500"
        assert status_of(exc) is None
        exc.status = True
        assert status_of(exc) is None

    def test_backend_error(self):
        err = BackendError("Not Found", status=404, code="NoSuchKey", request_id="r1")
        assert err.retryable is False
        assert str(err) == "Not Found"
        assert BackendError("down").retryable is True

    def test_exhausted_from_plain_exception(self):
        err = ClusterExhaustedError(ConnectionRefusedError("connect ECONNREFUSED"))
        assert str(err) == "connect ECONNREFUSED (all clients are down)"
        assert err.status is None


# =============================================================================
# Logging Tests
# =============================================================================


class TestLogging:
    """Test structured logging setup."""

    def test_setup_logging(self):
        import structlog

        from osscluster.log import setup_logging

        try:
            setup_logging("DEBUG", json_output=False)
            assert structlog.is_configured()
            structlog.get_logger("osscluster.test").info("logging.configured", check=True)
        finally:
            structlog.reset_defaults()

    def test_setup_logging_defaults_from_settings(self):
        import structlog

        from osscluster.log import setup_logging

        set_settings(ClusterSettings(log_level="WARNING", log_json=False))
        try:
            setup_logging()
            renderer = structlog.get_config()["processors"][-1]
            assert isinstance(renderer, structlog.dev.ConsoleRenderer)

            setup_logging(json_output=True)
            renderer = structlog.get_config()["processors"][-1]
            assert isinstance(renderer, structlog.processors.JSONRenderer)
        finally:
            structlog.reset_defaults()
