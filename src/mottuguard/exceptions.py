"""Custom exception hierarchy for mottuguard."""

from __future__ import annotations


class MottuError(Exception):
    """Base exception for all mottuguard errors."""


class MottuConfigError(MottuError):
    """Invalid or missing configuration."""


class MottuBrokerError(MottuError):
    """Broker connect/subscribe failure.

    Raised once the bounded connect retry budget is exhausted. The
    hosting process decides whether that is fatal; the consumer itself
    never retries forever.
    """

    def __init__(
        self,
        message: str,
        *,
        host: str = "",
        port: int | None = None,
        attempts: int = 0,
    ) -> None:
        self.host = host
        self.port = port
        self.attempts = attempts
        super().__init__(message)


class MottuPayloadError(MottuError):
    """Inbound message payload could not be decoded or validated."""

    def __init__(self, message: str, *, topic: str = "") -> None:
        self.topic = topic
        super().__init__(message)


class MottuStoreError(MottuError):
    """Persistent store rejected an operation (constraint, missing row)."""


class MottuModelError(MottuError):
    """Trained model artifacts could not be loaded or saved."""
