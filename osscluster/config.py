"""
OSS Cluster Configuration

Configuration for the cluster router using Pydantic for validation and
pydantic-settings for environment variable defaults.

Environment variables are prefixed with OSS_CLUSTER_ (e.g.
OSS_CLUSTER_SCHEDULE=masterSlave, OSS_CLUSTER_HEARTBEAT_INTERVAL_MS=5000).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings

from osscluster.errors import ConfigurationError
from osscluster.types import SchedulingPolicy

# Options applied identically to every endpoint unless it sets its own.
COMMON_OPTIONS = ("timeout", "agent", "transport")


class EndpointConfig(BaseModel):
    """
    Options for a single storage endpoint.

    Passed verbatim to the backend factory; keys the router does not know
    about are preserved.
    """
    model_config = ConfigDict(extra="allow")

    endpoint: Optional[str] = None
    bucket: Optional[str] = None
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    access_key_secret: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.endpoint or self.bucket or ""


class ClusterConfig(BaseModel):
    """Cluster router configuration."""
    cluster: List[EndpointConfig] = Field(..., min_length=1, description="Ordered endpoints")
    schedule: SchedulingPolicy = Field(default=SchedulingPolicy.ROUND_ROBIN)
    heartbeat_interval_ms: int = Field(default=10000, gt=0, description="Health check period")

    # Common per-endpoint options
    timeout: Optional[Any] = None
    agent: Optional[Any] = None
    transport: Optional[Any] = None

    # Health probe
    probe_prefix: str = Field(default="._oss-cluster", min_length=1)
    probe_attempts: int = Field(default=3, ge=1)

    @property
    def heartbeat_interval(self) -> float:
        """Heartbeat period in seconds."""
        return self.heartbeat_interval_ms / 1000.0

    def endpoint_options(self, index: int) -> Dict[str, Any]:
        """Options handed to the backend factory for endpoint *index*."""
        options = self.cluster[index].model_dump(exclude_none=True)
        for name in COMMON_OPTIONS:
            value = getattr(self, name)
            if value is not None and name not in options:
                options[name] = value
        return options


class ClusterSettings(BaseSettings):
    """Environment defaults for cluster clients."""
    schedule: SchedulingPolicy = SchedulingPolicy.ROUND_ROBIN
    heartbeat_interval_ms: int = Field(default=10000, gt=0)
    probe_prefix: str = "._oss-cluster"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_json: bool = True

    model_config = {
        "env_prefix": "OSS_CLUSTER_",
        "case_sensitive": False,
    }


def load_cluster_config(options: Any) -> ClusterConfig:
    """
    Build a validated :class:`ClusterConfig`.

    Accepts an existing config, a mapping of options, or ``None``.
    Fields missing from a mapping fall back to :class:`ClusterSettings`.

    Raises:
        ConfigurationError: the endpoint list is missing, empty, or any
            option fails validation.
    """
    if isinstance(options, ClusterConfig):
        return options
    if not isinstance(options, Mapping):
        raise ConfigurationError("require options.cluster to be a list")

    cluster = options.get("cluster")
    if not isinstance(cluster, (list, tuple)):
        raise ConfigurationError("require options.cluster to be a list")
    if not cluster:
        raise ConfigurationError("options.cluster must not be empty")

    settings = get_settings()
    data = dict(options)
    data["cluster"] = list(cluster)
    for name in ("schedule", "heartbeat_interval_ms", "probe_prefix"):
        if data.get(name) is None:
            data[name] = getattr(settings, name)

    try:
        return ClusterConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid cluster options: {exc}") from exc


# Global settings instance
_settings: Optional[ClusterSettings] = None


def get_settings() -> ClusterSettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = ClusterSettings()
    return _settings


def set_settings(settings: ClusterSettings) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset settings so they are re-read from the environment."""
    global _settings
    _settings = None
