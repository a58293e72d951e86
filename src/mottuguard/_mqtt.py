"""Internal MQTT runtime helpers."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from mottuguard.config import BrokerProfile
from mottuguard.exceptions import MottuBrokerError


@dataclass(frozen=True)
class MqttMessage:
    """Raw inbound message, copied off the network thread."""

    topic: str
    payload: bytes


def _default_client_factory(profile: BrokerProfile) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
        client_id=profile.client_id,
        protocol=mqtt.MQTTv311,
    )


class MottuMqttRuntime:
    """Threaded paho-mqtt runtime that hands raw messages to an asyncio loop.

    Parameters
    ----------
    loop : asyncio.AbstractEventLoop
        Loop that receives messages via ``call_soon_threadsafe``.
    profile : BrokerProfile
        Broker address, credentials, subscriptions and retry budget.
    on_message : Callable[[MqttMessage], None]
        Invoked on *loop* for every accepted message.
    client_factory : Callable[[BrokerProfile], mqtt.Client], optional
        Builds the paho client; tests pass a fake.
    sleep : Callable[[float], None], optional
        Backoff sleep between connect attempts.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        profile: BrokerProfile,
        on_message: Callable[[MqttMessage], None],
        logger: logging.Logger | None = None,
        client_factory: Callable[[BrokerProfile], mqtt.Client] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._loop = loop
        self._profile = profile
        self._on_message = on_message
        self._logger = logger or logging.getLogger(__name__)
        self._client_factory = client_factory or _default_client_factory
        self._sleep = sleep
        self._client: mqtt.Client | None = None
        self._running = False
        self._connected = False

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    @property
    def is_connected(self) -> bool:
        """Whether the broker session is currently up."""
        return self._running and self._connected

    def start(self) -> None:
        """Connect (bounded retry) and subscribe. Blocking; run in an executor.

        Raises
        ------
        MottuBrokerError
            When every connect attempt failed.
        """
        self.stop()
        profile = self._profile
        filters = profile.topic_filters()
        self._logger.debug(
            "MQTT runtime start requested host=%s port=%s client_id=%s filters=%s",
            profile.host,
            profile.port,
            profile.client_id,
            filters,
        )

        client = self._client_factory(profile)
        client.enable_logger(self._logger)
        if profile.username:
            client.username_pw_set(profile.username, profile.password)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._connected = True
            self._logger.info("MQTT connected to %s:%s", profile.host, profile.port)
            # Re-subscribing here keeps subscriptions alive across automatic reconnects.
            c.subscribe([(topic, profile.qos) for topic in filters])

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            if not self._running:
                return
            message = MqttMessage(topic=msg.topic, payload=bytes(msg.payload))
            try:
                self._loop.call_soon_threadsafe(self._on_message, message)
            except RuntimeError:
                self._logger.debug("Event loop closed; MQTT message dropped topic=%s", msg.topic)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._connected = False
            if self._running:
                self._logger.warning("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        attempts = max(1, profile.connect_attempts)
        delay = profile.connect_backoff_seconds
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                client.connect(profile.host, profile.port, keepalive=profile.keepalive)
                last_error = None
                break
            except (OSError, ValueError) as exc:
                last_error = exc
                self._logger.warning(
                    "MQTT connect attempt %s/%s to %s:%s failed: %s",
                    attempt,
                    attempts,
                    profile.host,
                    profile.port,
                    exc,
                )
                if attempt < attempts:
                    self._sleep(delay)
                    delay *= 2
        if last_error is not None:
            raise MottuBrokerError(
                f"Could not connect to broker {profile.host}:{profile.port} after {attempts} attempts",
                host=profile.host,
                port=profile.port,
                attempts=attempts,
            ) from last_error

        self._client = client
        self._running = True
        client.loop_start()
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Unsubscribe, disconnect and stop the network thread if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._connected = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT unsubscribe/disconnect requested")
                client.unsubscribe(list(self._profile.topic_filters()))
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
