"""Internal constants shared across the package."""

DEFAULT_TOPIC_PREFIX = "mottu"

# ------------------------------------------------------------------
# Live channel event names
# ------------------------------------------------------------------

EVENT_POSITION_UPDATE = "ReceivePositionUpdate"
EVENT_RANGING_UPDATE = "ReceiveRangingUpdate"
EVENT_MOTION = "ReceiveMotionEvent"
EVENT_STATUS_UPDATE = "ReceiveStatusUpdate"
EVENT_GEOFENCE = "ReceiveGeofenceEvent"
EVENT_OFFLINE = "ReceiveOfflineEvent"

# Event ``reason`` values that are forwarded, keyed to their live event name.
ALERT_REASONS: dict[str, str] = {
    "geofence_breach": EVENT_GEOFENCE,
    "offline": EVENT_OFFLINE,
}

# ------------------------------------------------------------------
# Feature windowing / model
# ------------------------------------------------------------------

HISTORY_POINTS = 5
WINDOW_SIZE = HISTORY_POINTS + 1

FEATURE_NAMES: tuple[str, ...] = (
    "current_x",
    "current_y",
    "previous_x",
    "previous_y",
    "position2_x",
    "position2_y",
    "position3_x",
    "position3_y",
    "position4_x",
    "position4_y",
    "velocity_x",
    "velocity_y",
    "avg_time_delta",
    "speed",
)

RANDOM_SEED = 42
TEST_FRACTION = 0.2
DEFAULT_MIN_SAMPLES = 50
DEFAULT_HISTORY_LENGTH = 5
MIN_HISTORY_LENGTH = 3
MAX_HISTORY_LENGTH = 10
MIN_SAMPLES_FLOOR = 10

# Gradient-boosted trees, one regressor per axis.
REGRESSOR_PARAMS: dict[str, int] = {
    "n_estimators": 100,
    "max_leaf_nodes": 20,
    "min_samples_leaf": 10,
    "random_state": RANDOM_SEED,
}

MODEL_FILE_X = "position_prediction_x.joblib"
MODEL_FILE_Y = "position_prediction_y.joblib"
MODEL_META_FILE = "position_prediction_meta.json"

# ------------------------------------------------------------------
# Model quality buckets (average R², exclusive lower bounds)
# ------------------------------------------------------------------

_QUALITY_BUCKETS: tuple[tuple[float, str], ...] = (
    (0.9, "Excellent"),
    (0.7, "Good"),
    (0.5, "Fair"),
)


def quality_label(avg_r2: float) -> str:
    """Bucket an average R² score into a human-readable label."""
    for threshold, label in _QUALITY_BUCKETS:
        if avg_r2 > threshold:
            return label
    return "Poor"
