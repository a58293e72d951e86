"""Ingestion layer.

This package turns raw broker messages (topic + payload bytes) into
normalized, validated values. It performs no I/O: persisting and
broadcasting those values is the consumer's job.
"""

__all__: list[str] = []
