"""Topic classification for inbound broker messages.

Every consumed topic maps to exactly one :class:`MessageKind`. The tag
hardware address is taken from the topic path, never from the payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class MessageKind(StrEnum):
    POSITION = "position"
    RANGING = "ranging"
    MOTION = "motion"
    STATUS = "status"
    EVENT = "event"


# ``.../uwb/<id>/<suffix>``
_UWB_SUFFIX_KINDS: dict[str, MessageKind] = {
    "position": MessageKind.POSITION,
    "ranging": MessageKind.RANGING,
}

# ``.../<segment>/<id>``
_TRAILING_ID_KINDS: dict[str, MessageKind] = {
    "motion": MessageKind.MOTION,
    "status": MessageKind.STATUS,
    "event": MessageKind.EVENT,
}


@dataclass(frozen=True)
class RoutedTopic:
    """A classified topic: message kind plus the tag address it names."""

    kind: MessageKind
    tag_address: str
    topic: str


def classify_topic(topic: str) -> RoutedTopic | None:
    """Classify *topic*, returning ``None`` when it matches no known pattern."""
    segments = topic.strip().strip("/").split("/")
    if len(segments) < 2 or any(not segment for segment in segments):
        return None

    if len(segments) >= 3 and segments[-3] == "uwb":
        kind = _UWB_SUFFIX_KINDS.get(segments[-1])
        if kind is not None:
            return RoutedTopic(kind=kind, tag_address=segments[-2], topic=topic)
        # a prefix ending in "uwb" still carries the trailing-id kinds

    kind = _TRAILING_ID_KINDS.get(segments[-2])
    if kind is not None:
        return RoutedTopic(kind=kind, tag_address=segments[-1], topic=topic)
    return None
