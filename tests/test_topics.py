from __future__ import annotations

import pytest

from mottuguard.config import BrokerProfile
from mottuguard.ingestion.topics import MessageKind, classify_topic


@pytest.mark.parametrize(
    ("topic", "kind", "tag"),
    [
        ("mottu/uwb/00AABBCCDDEEFF01/position", MessageKind.POSITION, "00AABBCCDDEEFF01"),
        ("mottu/uwb/00AABBCCDDEEFF01/ranging", MessageKind.RANGING, "00AABBCCDDEEFF01"),
        ("mottu/motion/00AABBCCDDEEFF01", MessageKind.MOTION, "00AABBCCDDEEFF01"),
        ("mottu/status/00AABBCCDDEEFF01", MessageKind.STATUS, "00AABBCCDDEEFF01"),
        ("mottu/event/00AABBCCDDEEFF01", MessageKind.EVENT, "00AABBCCDDEEFF01"),
        ("site-b/mottu/uwb/TAG7/position", MessageKind.POSITION, "TAG7"),
    ],
)
def test_classify_known_topics(topic: str, kind: MessageKind, tag: str) -> None:
    routed = classify_topic(topic)

    assert routed is not None
    assert routed.kind == kind
    assert routed.tag_address == tag
    assert routed.topic == topic


@pytest.mark.parametrize(
    "topic",
    [
        "",
        "mottu",
        "mottu/uwb/TAG/altitude",
        "mottu/uwb//position",
        "mottu/battery/TAG",
        "mottu/status",
        "mottu/uwb/TAG",
    ],
)
def test_unmatched_topics_are_not_routed(topic: str) -> None:
    assert classify_topic(topic) is None


def test_subscription_filters_route_to_every_kind() -> None:
    filters = BrokerProfile(topic_prefix="mottu/").topic_filters()

    assert filters == (
        "mottu/uwb/+/position",
        "mottu/uwb/+/ranging",
        "mottu/motion/+",
        "mottu/status/+",
        "mottu/event/+",
    )
    kinds = {classify_topic(f.replace("+", "TAG")).kind for f in filters}  # type: ignore[union-attr]
    assert kinds == set(MessageKind)


def test_prefix_ending_in_uwb_routes_every_kind() -> None:
    filters = BrokerProfile(topic_prefix="site/uwb").topic_filters()

    routed = [classify_topic(f.replace("+", "A1B2C3D4E5F60708")) for f in filters]

    assert all(r is not None and r.tag_address == "A1B2C3D4E5F60708" for r in routed)
    assert [r.kind for r in routed if r is not None] == [
        MessageKind.POSITION,
        MessageKind.RANGING,
        MessageKind.MOTION,
        MessageKind.STATUS,
        MessageKind.EVENT,
    ]
