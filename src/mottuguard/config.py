"""Service configuration for mottuguard."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from mottuguard._constants import DEFAULT_MIN_SAMPLES, DEFAULT_TOPIC_PREFIX
from mottuguard.exceptions import MottuConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env: Mapping[str, str], key: str, cast: type) -> Any:
    raw = env.get(key)
    if raw is None:
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise MottuConfigError(f"{key} must be {cast.__name__}, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class BrokerProfile:
    """MQTT broker connection settings.

    Parameters
    ----------
    host : str
        Broker hostname.
    port : int
        Broker TCP port.
    client_id : str
        MQTT client identifier. A single active consumer is assumed.
    topic_prefix : str
        First topic segment used to build the subscription filters.
    username, password : str or None
        Optional broker credentials.
    keepalive : int
        MQTT keepalive in seconds.
    connect_attempts : int
        Connect tries before giving up with ``MottuBrokerError``.
    connect_backoff_seconds : float
        Base delay between connect tries; doubled after each failure.
    qos : int
        Subscription QoS.
    """

    host: str = "localhost"
    port: int = 1883
    client_id: str = "backend-consumer"
    topic_prefix: str = DEFAULT_TOPIC_PREFIX
    username: str | None = None
    password: str | None = None
    keepalive: int = 60
    connect_attempts: int = 5
    connect_backoff_seconds: float = 1.0
    qos: int = 0

    def topic_filters(self) -> tuple[str, ...]:
        """Subscription filters for every consumed message kind."""
        prefix = self.topic_prefix.strip("/")
        return (
            f"{prefix}/uwb/+/position",
            f"{prefix}/uwb/+/ranging",
            f"{prefix}/motion/+",
            f"{prefix}/status/+",
            f"{prefix}/event/+",
        )


@dataclasses.dataclass(frozen=True)
class MottuConfig:
    """Service configuration.

    Parameters
    ----------
    database_path : str
        SQLite database file (``":memory:"`` for an ephemeral store).
    model_dir : str
        Directory holding the persisted axis regressors.
    http_host, http_port
        Bind address for the HTTP/websocket surface.
    mqtt_enabled : bool
        Start the broker consumer in ``serve``.
    min_training_samples : int
        Default sample floor for training requests.
    live_queue_size : int
        Per-subscriber buffer of the live channel.
    broker : BrokerProfile
        Broker connection settings.
    """

    database_path: str = "mottuguard.db"
    model_dir: str = "MLModels"
    http_host: str = "0.0.0.0"
    http_port: int = 8080
    mqtt_enabled: bool = True
    min_training_samples: int = DEFAULT_MIN_SAMPLES
    live_queue_size: int = 256
    broker: BrokerProfile = dataclasses.field(default_factory=BrokerProfile)

    @classmethod
    def from_env(cls, **overrides: Any) -> MottuConfig:
        """Create configuration from ``MOTTU_*`` environment variables.

        Explicit keyword arguments override environment values. ``broker``
        may be given as a :class:`BrokerProfile` or a dict of its fields.
        """
        env = os.environ

        broker_kwargs: dict[str, Any] = {}
        _ENV_BROKER_MAP = {
            "MOTTU_MQTT_HOST": "host",
            "MOTTU_MQTT_CLIENT_ID": "client_id",
            "MOTTU_MQTT_TOPIC_PREFIX": "topic_prefix",
            "MOTTU_MQTT_USERNAME": "username",
            "MOTTU_MQTT_PASSWORD": "password",
        }
        for env_key, field_name in _ENV_BROKER_MAP.items():
            val = env.get(env_key)
            if val is not None:
                broker_kwargs[field_name] = val

        _ENV_BROKER_NUMERIC = {
            "MOTTU_MQTT_PORT": ("port", int),
            "MOTTU_MQTT_KEEPALIVE": ("keepalive", int),
            "MOTTU_MQTT_CONNECT_ATTEMPTS": ("connect_attempts", int),
            "MOTTU_MQTT_CONNECT_BACKOFF": ("connect_backoff_seconds", float),
        }
        for env_key, (field_name, cast) in _ENV_BROKER_NUMERIC.items():
            val = _env_number(env, env_key, cast)
            if val is not None:
                broker_kwargs[field_name] = val

        broker_overrides = overrides.pop("broker", None)
        if isinstance(broker_overrides, dict):
            broker_kwargs.update(broker_overrides)
        elif isinstance(broker_overrides, BrokerProfile):
            broker_kwargs = dataclasses.asdict(broker_overrides)

        config_kwargs: dict[str, Any] = {"broker": BrokerProfile(**broker_kwargs)}

        _ENV_CONFIG_MAP = {
            "MOTTU_DB_PATH": "database_path",
            "MOTTU_MODEL_DIR": "model_dir",
            "MOTTU_HTTP_HOST": "http_host",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_CONFIG_NUMERIC = {
            "MOTTU_HTTP_PORT": ("http_port", int),
            "MOTTU_MIN_TRAINING_SAMPLES": ("min_training_samples", int),
            "MOTTU_LIVE_QUEUE_SIZE": ("live_queue_size", int),
        }
        for env_key, (field_name, cast) in _ENV_CONFIG_NUMERIC.items():
            if field_name in overrides:
                continue
            val = _env_number(env, env_key, cast)
            if val is not None:
                config_kwargs[field_name] = val

        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("MOTTU_MQTT_ENABLED"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
