"""Command line entry point.

Usage::

    mottuguard serve
    mottuguard train --min-samples 50
    mottuguard predict 7 --history-length 5
    mottuguard metrics
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from typing import Any

from aiohttp import web

from mottuguard._constants import DEFAULT_HISTORY_LENGTH, MAX_HISTORY_LENGTH, MIN_HISTORY_LENGTH, MIN_SAMPLES_FLOOR
from mottuguard.config import MottuConfig
from mottuguard.consumer import TelemetryConsumer
from mottuguard.exceptions import MottuBrokerError, MottuError
from mottuguard.live import LiveChannel
from mottuguard.prediction.artifacts import ModelArtifacts
from mottuguard.prediction.service import PredictionService
from mottuguard.store.sqlite import TelemetryStore
from mottuguard.web import create_app

_logger = logging.getLogger("mottuguard")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mottuguard",
        description="Fleet telemetry ingestion and position prediction service.",
    )
    parser.add_argument("--db", dest="database_path", help="SQLite database path (default: MOTTU_DB_PATH).")
    parser.add_argument("--model-dir", help="Directory of persisted models (default: MOTTU_MODEL_DIR).")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Consume broker telemetry and serve the HTTP API.")
    serve.add_argument("--host", dest="http_host", help="HTTP bind address.")
    serve.add_argument("--port", dest="http_port", type=int, help="HTTP port.")
    serve.add_argument("--no-mqtt", action="store_true", help="Serve the API without consuming the broker.")

    train = sub.add_parser("train", help="Train the position model from stored history.")
    train.add_argument("--min-samples", type=int, default=None, help="Minimum training samples required.")

    predict = sub.add_parser("predict", help="Predict the next position of one vehicle.")
    predict.add_argument("vehicle_id", type=int)
    predict.add_argument(
        "--history-length",
        type=int,
        default=DEFAULT_HISTORY_LENGTH,
        help=f"Records to load ({MIN_HISTORY_LENGTH}-{MAX_HISTORY_LENGTH}).",
    )

    sub.add_parser("metrics", help="Show metrics of the persisted model.")
    return parser.parse_args(argv)


def _config_from_args(args: argparse.Namespace) -> MottuConfig:
    overrides: dict[str, Any] = {}
    for name in ("database_path", "model_dir", "http_host", "http_port"):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    if getattr(args, "no_mqtt", False):
        overrides["mqtt_enabled"] = False
    return MottuConfig.from_env(**overrides)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _build_service(config: MottuConfig, store: TelemetryStore) -> PredictionService:
    service = PredictionService(store, artifacts=ModelArtifacts(config.model_dir))
    service.load_persisted()
    return service


async def _serve(config: MottuConfig) -> int:
    store = TelemetryStore(config.database_path)
    live = LiveChannel(queue_size=config.live_queue_size)
    service = _build_service(config, store)
    consumer = TelemetryConsumer(store=store, live=live, profile=config.broker) if config.mqtt_enabled else None

    runner = web.AppRunner(create_app(service=service, live=live, consumer=consumer))
    await runner.setup()
    site = web.TCPSite(runner, config.http_host, config.http_port)
    await site.start()
    _logger.info("HTTP surface listening on %s:%s", config.http_host, config.http_port)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    try:
        if consumer is not None:
            try:
                await consumer.start()
            except MottuBrokerError as exc:
                _logger.error("Broker unavailable, serving without ingestion: %s", exc)
        await stop_event.wait()
        _logger.info("Shutdown requested")
    finally:
        if consumer is not None:
            await consumer.stop()
        await runner.cleanup()
        store.close()
    return 0


async def _train(config: MottuConfig, min_samples: int | None) -> int:
    wanted = config.min_training_samples if min_samples is None else min_samples
    if wanted < MIN_SAMPLES_FLOOR:
        print(f"Minimum samples must be at least {MIN_SAMPLES_FLOOR}", file=sys.stderr)
        return 2
    store = TelemetryStore(config.database_path)
    try:
        result = await _build_service(config, store).train_model(wanted)
    finally:
        store.close()
    _print_json(result.to_json_dict())
    return 0 if result.success else 1


async def _predict(config: MottuConfig, vehicle_id: int, history_length: int) -> int:
    if not MIN_HISTORY_LENGTH <= history_length <= MAX_HISTORY_LENGTH:
        print(f"--history-length must be between {MIN_HISTORY_LENGTH} and {MAX_HISTORY_LENGTH}", file=sys.stderr)
        return 2
    store = TelemetryStore(config.database_path)
    try:
        outcome = await _build_service(config, store).predict_next(vehicle_id, history_length)
    finally:
        store.close()
    if outcome.prediction is None:
        print(f"{outcome.status.value}: {outcome.message}", file=sys.stderr)
        return 1
    _print_json(outcome.prediction.to_json_dict())
    return 0


async def _metrics(config: MottuConfig) -> int:
    store = TelemetryStore(config.database_path)
    try:
        metrics = await _build_service(config, store).get_metrics()
    finally:
        store.close()
    _print_json(metrics.to_json_dict())
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _config_from_args(args)
        if args.command == "serve":
            return asyncio.run(_serve(config))
        if args.command == "train":
            return asyncio.run(_train(config, args.min_samples))
        if args.command == "predict":
            return asyncio.run(_predict(config, args.vehicle_id, args.history_length))
        return asyncio.run(_metrics(config))
    except MottuError as exc:
        print(f"[mottuguard] {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
