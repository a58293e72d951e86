from __future__ import annotations

import os

import pytest

from mottuguard.config import BrokerProfile, MottuConfig
from mottuguard.exceptions import MottuConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("MOTTU_"):
            monkeypatch.delenv(key)


def test_defaults() -> None:
    config = MottuConfig.from_env()

    assert config.database_path == "mottuguard.db"
    assert config.http_port == 8080
    assert config.mqtt_enabled is True
    assert config.min_training_samples == 50
    assert config.broker == BrokerProfile()
    assert config.broker.client_id == "backend-consumer"


def test_environment_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MOTTU_DB_PATH", "/var/lib/mottu/telemetry.db")
    monkeypatch.setenv("MOTTU_HTTP_PORT", "9000")
    monkeypatch.setenv("MOTTU_MQTT_ENABLED", "off")
    monkeypatch.setenv("MOTTU_MQTT_HOST", "broker.internal")
    monkeypatch.setenv("MOTTU_MQTT_PORT", "8883")
    monkeypatch.setenv("MOTTU_MQTT_CONNECT_BACKOFF", "0.25")

    config = MottuConfig.from_env()

    assert config.database_path == "/var/lib/mottu/telemetry.db"
    assert config.http_port == 9000
    assert config.mqtt_enabled is False
    assert config.broker.host == "broker.internal"
    assert config.broker.port == 8883
    assert config.broker.connect_backoff_seconds == 0.25


def test_overrides_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MOTTU_HTTP_PORT", "9000")
    monkeypatch.setenv("MOTTU_MQTT_HOST", "broker.internal")
    monkeypatch.setenv("MOTTU_MQTT_ENABLED", "false")

    config = MottuConfig.from_env(http_port=7000, mqtt_enabled=True, broker={"port": 2883})

    assert config.http_port == 7000
    assert config.mqtt_enabled is True
    assert (config.broker.host, config.broker.port) == ("broker.internal", 2883)


def test_broker_profile_override_replaces_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MOTTU_MQTT_HOST", "broker.internal")

    config = MottuConfig.from_env(broker=BrokerProfile(host="other", client_id="test"))

    assert config.broker.host == "other"
    assert config.broker.client_id == "test"


def test_unparseable_number_is_a_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MOTTU_MQTT_PORT", "eighteen-eighty-three")

    with pytest.raises(MottuConfigError, match="MOTTU_MQTT_PORT"):
        MottuConfig.from_env()


def test_unrecognised_bool_keeps_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MOTTU_MQTT_ENABLED", "maybe")

    assert MottuConfig.from_env().mqtt_enabled is True


def test_topic_filters_use_prefix() -> None:
    assert BrokerProfile(topic_prefix="/fleet/").topic_filters() == (
        "fleet/uwb/+/position",
        "fleet/uwb/+/ranging",
        "fleet/motion/+",
        "fleet/status/+",
        "fleet/event/+",
    )
