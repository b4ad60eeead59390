"""Statistical helpers for sensor time series."""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from sensor_analytics.sensors.models import SENSOR_TYPES, SensorDataPoint

# Relative change per hour (as a fraction of the mean) below which a series is "stable"
STABLE_SLOPE_FRACTION = 0.01


def available_sensor_types(dataset: Sequence[SensorDataPoint]) -> List[str]:
    """Measurement types with at least one value, in canonical order."""
    present = set()
    for point in dataset:
        for sensor_type in SENSOR_TYPES:
            if getattr(point.measurements, sensor_type) is not None:
                present.add(sensor_type)
    return [t for t in SENSOR_TYPES if t in present]


def extract_series(
    dataset: Sequence[SensorDataPoint],
    sensor_type: str,
) -> Tuple[List[datetime], np.ndarray]:
    """Timestamps and values of one measurement type, skipping gaps."""
    timestamps: List[datetime] = []
    values: List[float] = []
    for point in dataset:
        value = getattr(point.measurements, sensor_type)
        if value is not None:
            timestamps.append(point.timestamp)
            values.append(float(value))
    return timestamps, np.array(values, dtype=np.float64)


def hours_since_start(timestamps: Sequence[datetime]) -> np.ndarray:
    if not timestamps:
        return np.array([], dtype=np.float64)
    origin = timestamps[0]
    return np.array(
        [(t - origin).total_seconds() / 3600.0 for t in timestamps],
        dtype=np.float64,
    )


def summary_stats(values: np.ndarray) -> Dict[str, float]:
    return {
        "mean": round(float(np.mean(values)), 2),
        "std": round(float(np.std(values)), 2),
        "min": round(float(np.min(values)), 2),
        "max": round(float(np.max(values)), 2),
    }


def linear_trend(hours: np.ndarray, values: np.ndarray) -> Dict[str, float | str]:
    """Fit a least-squares line and classify its direction.

    Returns the slope per hour, the correlation coefficient, the p-value and
    a direction of ``rising``, ``falling`` or ``stable``.
    """
    if len(values) < 2 or np.ptp(hours) == 0:
        return {"direction": "stable", "slope_per_hour": 0.0, "r_value": 0.0, "p_value": 1.0}

    fit = stats.linregress(hours, values)
    slope = float(fit.slope)
    r_value = 0.0 if np.isnan(fit.rvalue) else float(fit.rvalue)
    p_value = 1.0 if np.isnan(fit.pvalue) else float(fit.pvalue)

    scale = abs(float(np.mean(values))) or 1.0
    if abs(slope) / scale < STABLE_SLOPE_FRACTION:
        direction = "stable"
    else:
        direction = "rising" if slope > 0 else "falling"

    return {
        "direction": direction,
        "slope_per_hour": round(slope, 4),
        "r_value": round(r_value, 3),
        "p_value": round(p_value, 4),
    }


def detect_anomalies(
    timestamps: Sequence[datetime],
    values: np.ndarray,
    zscore_threshold: float = 2.5,
) -> List[Dict]:
    """Flag readings whose z-score exceeds the threshold.

    Severity is ``low`` up to 1.5x the threshold, ``medium`` up to 2x and
    ``high`` beyond that.
    """
    if len(values) < 3:
        return []
    std = float(np.std(values))
    if std == 0:
        return []
    z = (values - float(np.mean(values))) / std

    anomalies = []
    for i in np.flatnonzero(np.abs(z) > zscore_threshold):
        score = abs(float(z[i]))
        if score > 2 * zscore_threshold:
            severity = "high"
        elif score > 1.5 * zscore_threshold:
            severity = "medium"
        else:
            severity = "low"
        anomalies.append({
            "timestamp": timestamps[i].isoformat(),
            "value": round(float(values[i]), 2),
            "zscore": round(float(z[i]), 2),
            "severity": severity,
        })
    return anomalies


def linear_forecast(
    timestamps: Sequence[datetime],
    values: np.ndarray,
    horizon: int = 6,
    step: Optional[timedelta] = None,
) -> List[Dict]:
    """Extrapolate the fitted line ``horizon`` steps past the last reading.

    The step defaults to the median spacing between readings.
    """
    if len(values) < 2 or horizon <= 0:
        return []
    hours = hours_since_start(timestamps)
    if np.ptp(hours) == 0:
        return []

    if step is None:
        step_hours = float(np.median(np.diff(hours))) or float(np.ptp(hours)) / (len(hours) - 1)
    else:
        step_hours = step.total_seconds() / 3600.0

    slope, intercept = np.polyfit(hours, values, 1)
    forecast = []
    for k in range(1, horizon + 1):
        h = hours[-1] + k * step_hours
        forecast.append({
            "timestamp": (timestamps[0] + timedelta(hours=float(h))).isoformat(),
            "value": round(float(slope * h + intercept), 2),
        })
    return forecast


def pearson(a: np.ndarray, b: np.ndarray) -> Optional[float]:
    """Pearson correlation, or None when it is undefined."""
    if len(a) < 3 or len(a) != len(b):
        return None
    if np.std(a) == 0 or np.std(b) == 0:
        return None
    return float(np.corrcoef(a, b)[0, 1])


def paired_values(
    dataset: Sequence[SensorDataPoint],
    first: str,
    second: str,
) -> Tuple[np.ndarray, np.ndarray]:
    """Values of two measurement types from readings that carry both."""
    a, b = [], []
    for point in dataset:
        x = getattr(point.measurements, first)
        y = getattr(point.measurements, second)
        if x is not None and y is not None:
            a.append(float(x))
            b.append(float(y))
    return np.array(a, dtype=np.float64), np.array(b, dtype=np.float64)
