"""HTTP and websocket surface (aiohttp.web).

Routes
------
POST /api/v1/predictions/train          train a new model (``?minSamples=``)
POST /api/v1/predictions/predict-next   predict a vehicle's next fix
GET  /api/v1/predictions/metrics        active model metrics
GET  /health                            broker health
GET  /ws/live                           live update stream
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from datetime import UTC, datetime

from aiohttp import WSMsgType, web
from pydantic import Field, ValidationError

from mottuguard._constants import (
    DEFAULT_HISTORY_LENGTH,
    DEFAULT_MIN_SAMPLES,
    MAX_HISTORY_LENGTH,
    MIN_HISTORY_LENGTH,
    MIN_SAMPLES_FLOOR,
)
from mottuguard.consumer import TelemetryConsumer
from mottuguard.health import HealthStatus, check_broker_health
from mottuguard.live import LiveChannel, LiveSubscription
from mottuguard.models._base import MottuBaseModel
from mottuguard.models.predictions import PredictStatus
from mottuguard.prediction.service import PredictionService

_logger = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("prediction_service", PredictionService)
LIVE_KEY = web.AppKey("live_channel", LiveChannel)
CONSUMER_KEY = web.AppKey("consumer", TelemetryConsumer | None)


class PredictNextRequest(MottuBaseModel):
    vehicle_id: int
    history_length: int | None = Field(default=None, ge=MIN_HISTORY_LENGTH, le=MAX_HISTORY_LENGTH)


def error_response(request: web.Request, status: int, error: str, message: str) -> web.Response:
    trace_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    body = {
        "error": error,
        "message": message,
        "traceId": trace_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return web.json_response(body, status=status)


# ------------------------------------------------------------------
# Prediction endpoints
# ------------------------------------------------------------------


async def train_model(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    raw = request.query.get("minSamples")
    try:
        min_samples = int(raw) if raw is not None else DEFAULT_MIN_SAMPLES
    except ValueError:
        return error_response(request, 400, "INVALID_MIN_SAMPLES", "minSamples must be an integer")
    if min_samples < MIN_SAMPLES_FLOOR:
        return error_response(
            request, 400, "INVALID_MIN_SAMPLES", f"Minimum samples must be at least {MIN_SAMPLES_FLOOR}"
        )

    try:
        result = await service.train_model(min_samples)
    except Exception as exc:
        _logger.error("Unexpected training error", exc_info=True)
        return error_response(request, 500, "TRAINING_ERROR", f"An error occurred during model training: {exc}")

    if not result.success:
        return error_response(request, 400, "TRAINING_FAILED", result.message)
    return web.json_response(result.to_json_dict())


async def predict_next(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    try:
        body = await request.json()
        parsed = PredictNextRequest.model_validate(body)
    except ValueError as exc:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
        detail = exc.errors()[0]["msg"] if isinstance(exc, ValidationError) else "Request body is not valid JSON"
        return error_response(request, 400, "VALIDATION_ERROR", detail)

    try:
        if not service.is_trained():
            return error_response(
                request,
                400,
                "MODEL_NOT_TRAINED",
                "Position model has not been trained yet. Train the model first.",
            )
        outcome = await service.predict_next(parsed.vehicle_id, parsed.history_length or DEFAULT_HISTORY_LENGTH)
    except Exception as exc:
        _logger.error("Unexpected prediction error", exc_info=True)
        return error_response(request, 500, "PREDICTION_ERROR", f"An error occurred during prediction: {exc}")

    if outcome.status == PredictStatus.NOT_TRAINED:
        return error_response(request, 400, "MODEL_NOT_TRAINED", outcome.message)
    if outcome.status == PredictStatus.INSUFFICIENT_DATA or outcome.prediction is None:
        return error_response(request, 404, "INSUFFICIENT_DATA", outcome.message)
    return web.json_response(outcome.prediction.to_json_dict())


async def get_metrics(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    try:
        metrics = await service.get_metrics()
    except Exception as exc:
        _logger.error("Unexpected metrics error", exc_info=True)
        return error_response(request, 500, "METRICS_ERROR", f"An error occurred retrieving metrics: {exc}")
    return web.json_response(metrics.to_json_dict())


# ------------------------------------------------------------------
# Health / live
# ------------------------------------------------------------------


async def health(request: web.Request) -> web.Response:
    report = check_broker_health(request.app[CONSUMER_KEY])
    status = 503 if report.status == HealthStatus.UNHEALTHY else 200
    return web.json_response(report.to_json_dict(), status=status)


async def _forward_updates(subscription: LiveSubscription, ws: web.WebSocketResponse) -> None:
    try:
        async for update in subscription:
            await ws.send_json(update.to_json_dict())
    except (ConnectionError, RuntimeError):
        _logger.debug("Live websocket send failed; listener gone", exc_info=True)
        await ws.close()


async def live_updates(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)
    live = request.app[LIVE_KEY]

    async with live.subscribe() as subscription:
        sender = asyncio.create_task(_forward_updates(subscription, ws))
        try:
            async for msg in ws:
                # Listeners do not send anything meaningful; reading keeps close/ping handling alive.
                if msg.type == WSMsgType.ERROR:
                    _logger.debug("Live websocket error: %s", ws.exception())
                    break
        finally:
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender
    return ws


def create_app(
    *,
    service: PredictionService,
    live: LiveChannel,
    consumer: TelemetryConsumer | None = None,
) -> web.Application:
    app = web.Application()
    app[SERVICE_KEY] = service
    app[LIVE_KEY] = live
    app[CONSUMER_KEY] = consumer
    app.add_routes(
        [
            web.post("/api/v1/predictions/train", train_model),
            web.post("/api/v1/predictions/predict-next", predict_next),
            web.get("/api/v1/predictions/metrics", get_metrics),
            web.get("/health", health),
            web.get("/ws/live", live_updates),
        ]
    )
    return app
