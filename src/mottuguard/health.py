"""Broker health check."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Protocol

from mottuguard.models._base import MottuBaseModel

_logger = logging.getLogger(__name__)


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthReport(MottuBaseModel):
    status: HealthStatus
    description: str
    broker_connected: bool = False


class _SupportsConnection(Protocol):
    @property
    def is_connected(self) -> bool: ...


def check_broker_health(consumer: _SupportsConnection | None) -> HealthReport:
    """Healthy when the broker session is up, degraded when it is not.

    A consumer that cannot even report its state is unhealthy.
    """
    if consumer is None:
        return HealthReport(status=HealthStatus.DEGRADED, description="MQTT consumer is not running")
    try:
        connected = consumer.is_connected
    except Exception:
        _logger.error("Health check failed for MQTT broker", exc_info=True)
        return HealthReport(status=HealthStatus.UNHEALTHY, description="MQTT health check failed with exception")

    if connected:
        return HealthReport(
            status=HealthStatus.HEALTHY,
            description="MQTT broker is connected and operational",
            broker_connected=True,
        )
    _logger.warning("MQTT broker is not connected")
    return HealthReport(status=HealthStatus.DEGRADED, description="MQTT broker is not connected")
