"""Telemetry consumer.

Owns:
- starting/stopping the threaded MQTT runtime
- the consumption loop (one message handled at a time, in arrival order)
- applying ingestion results to the store and the live channel
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from mottuguard._mqtt import MottuMqttRuntime, MqttMessage
from mottuguard.config import BrokerProfile
from mottuguard.exceptions import MottuPayloadError
from mottuguard.ingestion.telemetry import (
    build_position_fix,
    build_ranging_report,
    build_tag_alert,
    build_tag_notice,
)
from mottuguard.ingestion.topics import MessageKind, RoutedTopic, classify_topic
from mottuguard.live import LiveChannel
from mottuguard.models.entities import TagStatus
from mottuguard.store.sqlite import MeasurementRow, TelemetryStore

_T = TypeVar("_T")

RuntimeFactory = Callable[..., MottuMqttRuntime]


@dataclass
class ConsumerStats:
    received: int = 0
    handled: int = 0
    dropped: int = 0
    failed: int = 0


class TelemetryConsumer:
    """Long-lived broker consumer.

    Parameters
    ----------
    store : TelemetryStore
        Persistent store; blocking calls are dispatched to the default executor.
    live : LiveChannel
        Live update fan-out.
    profile : BrokerProfile
        Broker settings used when :meth:`start` creates the runtime.
    runtime_factory : Callable, optional
        Builds the MQTT runtime. Defaults to :class:`MottuMqttRuntime`.
    """

    def __init__(
        self,
        *,
        store: TelemetryStore,
        live: LiveChannel,
        profile: BrokerProfile | None = None,
        runtime_factory: RuntimeFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._live = live
        self._profile = profile or BrokerProfile()
        self._runtime_factory = runtime_factory or MottuMqttRuntime
        self._logger = logger or logging.getLogger(__name__)
        self._runtime: MottuMqttRuntime | None = None
        self._queue: asyncio.Queue[MqttMessage] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._accepting = False
        self._stopping = False
        self._busy = False
        self._stats = ConsumerStats()

    @property
    def is_connected(self) -> bool:
        runtime = self._runtime
        return runtime is not None and runtime.is_connected

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def stats(self) -> ConsumerStats:
        return ConsumerStats(**vars(self._stats))

    async def start(self) -> None:
        """Start the consumption loop and connect to the broker.

        Raises
        ------
        MottuBrokerError
            When the broker could not be reached within the retry budget.
            The loop is torn down again before the error propagates.
        """
        loop = asyncio.get_running_loop()
        self._stopping = False
        self._accepting = True
        self._task = loop.create_task(self._run(), name="mottuguard-consumer")

        runtime = self._runtime_factory(
            loop=loop,
            profile=self._profile,
            on_message=self.enqueue,
            logger=self._logger,
        )
        try:
            await loop.run_in_executor(None, runtime.start)
        except BaseException:
            await self.stop()
            raise
        self._runtime = runtime

    async def stop(self) -> None:
        """Stop accepting messages, disconnect, and end the loop.

        A handler already in progress runs to completion; queued messages
        that have not started are discarded.
        """
        self._accepting = False
        self._stopping = True
        runtime = self._runtime
        self._runtime = None
        if runtime is not None:
            try:
                await asyncio.get_running_loop().run_in_executor(None, runtime.stop)
            except Exception:
                self._logger.debug("MQTT runtime stop failed", exc_info=True)

        task = self._task
        self._task = None
        if task is not None and not task.done():
            if self._busy:
                await task
            else:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        discarded = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            discarded += 1
        if discarded:
            self._logger.debug("Discarded %s queued messages on shutdown", discarded)
        self._stats.dropped += discarded

    def enqueue(self, message: MqttMessage) -> None:
        """Accept a message from the runtime (runs on the event loop)."""
        if not self._accepting:
            self._stats.dropped += 1
            return
        self._stats.received += 1
        self._queue.put_nowait(message)

    async def _run(self) -> None:
        while not self._stopping:
            message = await self._queue.get()
            self._busy = True
            try:
                await self.handle_message(message.topic, message.payload)
            finally:
                self._busy = False

    async def _call(self, func: Callable[..., _T], *args: Any) -> _T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def handle_message(self, topic: str, payload: bytes | str) -> bool:
        """Route and handle one message. Never raises; returns whether it was handled."""
        routed = classify_topic(topic)
        if routed is None:
            self._stats.dropped += 1
            self._logger.debug("Ignoring message on unmatched topic=%s", topic)
            return False

        try:
            if routed.kind == MessageKind.POSITION:
                await self._handle_position(routed, payload)
            elif routed.kind == MessageKind.RANGING:
                await self._handle_ranging(routed, payload)
            elif routed.kind == MessageKind.STATUS:
                await self._handle_status(routed, payload)
            elif routed.kind == MessageKind.MOTION:
                self._handle_motion(routed, payload)
            else:
                self._handle_event(routed, payload)
        except MottuPayloadError as exc:
            self._stats.dropped += 1
            self._logger.warning("Dropping malformed message topic=%s: %s", topic, exc)
            return False
        except Exception:
            self._stats.failed += 1
            self._logger.error("Error handling message topic=%s", topic, exc_info=True)
            return False

        self._stats.handled += 1
        return True

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_position(self, routed: RoutedTopic, payload: bytes | str) -> None:
        fix = build_position_fix(routed.tag_address, payload, topic=routed.topic)
        tag = await self._call(self._store.get_tag_by_address, fix.tag_address)
        if tag is None:
            self._logger.debug("Position for unknown tag=%s not persisted", fix.tag_address)
        else:
            await self._call(self._store.record_position, tag.vehicle_id, fix.x, fix.y, fix.timestamp)
            self._logger.debug("Position tag=%s vehicle=%s x=%s y=%s", fix.tag_address, tag.vehicle_id, fix.x, fix.y)
        self._publish(fix.live_update())

    async def _handle_ranging(self, routed: RoutedTopic, payload: bytes | str) -> None:
        report = build_ranging_report(routed.tag_address, payload, topic=routed.topic)
        if report.rejected:
            self._logger.debug("Ranging tag=%s skipped malformed entries %s", report.tag_address, list(report.rejected))
        tag = await self._call(self._store.get_tag_by_address, report.tag_address)
        if tag is None:
            self._logger.debug("Ranging for unknown tag=%s not persisted", report.tag_address)
        else:
            anchors = await self._call(self._store.get_anchors_by_names, list(report.readings))
            rows = [
                MeasurementRow(
                    tag_id=tag.id,
                    anchor_id=anchors[name].id,
                    timestamp=report.timestamp,
                    distance=entry.distance,
                    rssi=entry.rssi,
                )
                for name, entry in report.readings.items()
                if name in anchors
            ]
            unresolved = sorted(set(report.readings) - set(anchors))
            if unresolved:
                self._logger.debug("Ranging tag=%s skipped unknown anchors %s", report.tag_address, unresolved)
            if rows:
                await self._call(self._store.add_measurements, rows)
        self._publish(report.live_update())

    async def _handle_status(self, routed: RoutedTopic, payload: bytes | str) -> None:
        notice = build_tag_notice(MessageKind.STATUS, routed.tag_address, payload, topic=routed.topic)
        tag = await self._call(self._store.get_tag_by_address, notice.tag_address)
        if tag is not None:
            await self._call(self._store.set_tag_status, tag.id, TagStatus.ACTIVE)
        self._publish(notice.live_update())
        self._logger.debug("Status update tag=%s", notice.tag_address)

    def _handle_motion(self, routed: RoutedTopic, payload: bytes | str) -> None:
        notice = build_tag_notice(MessageKind.MOTION, routed.tag_address, payload, topic=routed.topic)
        self._publish(notice.live_update())
        self._logger.debug("Motion event tag=%s", notice.tag_address)

    def _handle_event(self, routed: RoutedTopic, payload: bytes | str) -> None:
        alert = build_tag_alert(routed.tag_address, payload, topic=routed.topic)
        update = alert.live_update()
        if update is None:
            self._logger.debug("Ignoring event reason=%s tag=%s", alert.reason, alert.tag_address)
            return
        self._publish(update)
        self._logger.warning("Tag alert reason=%s tag=%s", alert.reason, alert.tag_address)

    def _publish(self, update: tuple[str, tuple[Any, ...]]) -> None:
        event, args = update
        self._live.publish(event, *args)
