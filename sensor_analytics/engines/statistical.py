"""Rule-based sensor analysis engine: trend, anomaly and forecast statistics.

Runs entirely in-process on numpy/scipy. Produces the same result shape as
the LLM-backed engines used by the gateway: per-sensor analyses, pairwise
correlations, an overall summary and run metadata.
"""

import asyncio
import logging
from datetime import datetime, timezone
from itertools import combinations
from typing import Any, Dict, List, Sequence

from sensor_analytics.engines.base import AnalysisEngine, Phase, PhaseCallback
from sensor_analytics.errors import EngineFailure
from sensor_analytics.jobs.models import AnalysisKind, AnalysisParameters
from sensor_analytics.processing.timeseries import (
    available_sensor_types,
    detect_anomalies,
    extract_series,
    hours_since_start,
    linear_forecast,
    linear_trend,
    paired_values,
    pearson,
    summary_stats,
)
from sensor_analytics.sensors.models import SENSOR_TYPE_INFO, SensorDataPoint

logger = logging.getLogger(__name__)

# Correlations weaker than this are not reported
MIN_CORRELATION = 0.3


class StatisticalEngine(AnalysisEngine):
    """Deterministic engine for local development and offline deployments."""

    name = "statistical-v1"

    def __init__(self, anomaly_zscore: float = 2.5, forecast_horizon: int = 6):
        self._anomaly_zscore = anomaly_zscore
        self._forecast_horizon = forecast_horizon

    async def analyze(
        self,
        dataset: Sequence[SensorDataPoint],
        kind: AnalysisKind,
        parameters: AnalysisParameters,
        on_phase: PhaseCallback,
    ) -> Dict[str, Any]:
        model = parameters.model or self.name
        if model not in self.list_models():
            logger.warning(f"Unknown model '{model}', falling back to {self.name}")
            model = self.name

        await on_phase(Phase.DATA_PREPARATION.value, "Preparing sensor data", 0.1)
        sensor_types = available_sensor_types(dataset)
        if not sensor_types:
            raise EngineFailure("Readings contain no measurements to analyze")

        await on_phase(
            Phase.SENSOR_ANALYSIS_START.value,
            f"Analyzing {len(sensor_types)} sensor type(s)",
            0.2,
        )
        sensor_analyses = []
        for i, sensor_type in enumerate(sensor_types, start=1):
            # numpy/scipy work stays off the event loop
            sensor_analyses.append(
                await asyncio.to_thread(self._analyze_sensor_type, dataset, sensor_type, kind)
            )
            await on_phase(
                Phase.SENSOR_ANALYSIS_PROGRESS.value,
                f"Analyzed {sensor_type}",
                i / len(sensor_types),
            )

        await on_phase(Phase.CORRELATION_ANALYSIS.value, "Analyzing correlations", 0.6)
        correlations = await asyncio.to_thread(self._analyze_correlations, dataset, sensor_types)

        await on_phase(Phase.SUMMARY_GENERATION.value, "Generating summary", 0.9)
        result = {
            "overall_summary": _overall_summary(kind, sensor_analyses, correlations),
            "sensor_analyses": sensor_analyses,
            "correlations": correlations,
            "metadata": {
                "model_used": model,
                "analysis_timestamp": datetime.now(timezone.utc).isoformat(),
                "data_points_analyzed": sum(a["readings_count"] for a in sensor_analyses),
            },
        }

        await on_phase(Phase.ANALYSIS_COMPLETE.value, "Analysis complete", 1.0)
        return result

    def _analyze_sensor_type(
        self,
        dataset: Sequence[SensorDataPoint],
        sensor_type: str,
        kind: AnalysisKind,
    ) -> Dict[str, Any]:
        info = SENSOR_TYPE_INFO[sensor_type]
        timestamps, values = extract_series(dataset, sensor_type)
        hours = hours_since_start(timestamps)

        series_stats = summary_stats(values)
        trend = linear_trend(hours, values)
        anomalies = detect_anomalies(timestamps, values, self._anomaly_zscore)

        analysis: Dict[str, Any] = {
            "sensor_type": sensor_type,
            "unit": info.unit,
            "readings_count": int(len(values)),
            "stats": series_stats,
            "summary": (
                f"{info.description}: mean {series_stats['mean']}{info.unit} "
                f"(optimal {info.optimal_low:g}-{info.optimal_high:g}{info.unit}), "
                f"trend {trend['direction']}, {len(anomalies)} anomalies"
            ),
            "trends": [{
                "type": trend["direction"],
                "description": (
                    f"{sensor_type} is {trend['direction']} "
                    f"({trend['slope_per_hour']:+g}{info.unit}/h)"
                ),
                "confidence": round(abs(float(trend["r_value"])), 3),
                "slope_per_hour": trend["slope_per_hour"],
            }],
            "anomalies": anomalies,
            "recommendations": _recommendations(sensor_type, series_stats["mean"], trend, anomalies),
        }

        if kind == AnalysisKind.FORECAST:
            analysis["forecast"] = linear_forecast(timestamps, values, self._forecast_horizon)

        return analysis

    def _analyze_correlations(
        self,
        dataset: Sequence[SensorDataPoint],
        sensor_types: List[str],
    ) -> List[Dict[str, Any]]:
        if len(sensor_types) < 2:
            return []

        correlations = []
        for first, second in combinations(sensor_types, 2):
            a, b = paired_values(dataset, first, second)
            r = pearson(a, b)
            if r is None or abs(r) < MIN_CORRELATION:
                continue
            strength = "strongly" if abs(r) >= 0.7 else "moderately"
            sign = "positively" if r > 0 else "negatively"
            correlations.append({
                "description": f"{first} and {second} are {strength} {sign} correlated (r={r:.2f})",
                "sensor_types": [first, second],
                "confidence": round(abs(r), 3),
            })
        return correlations


def _recommendations(
    sensor_type: str,
    mean: float,
    trend: Dict[str, Any],
    anomalies: List[Dict],
) -> List[str]:
    """Care recommendations from the indoor ranges of a measurement type."""
    info = SENSOR_TYPE_INFO[sensor_type]
    recs = []

    if mean < info.critical_low:
        recs.append(f"{sensor_type} is critically low ({mean}{info.unit}); act immediately.")
    elif mean < info.optimal_low:
        recs.append(f"Raise {sensor_type} towards {info.optimal_low:g}-{info.optimal_high:g}{info.unit}.")
    elif mean > info.critical_high:
        recs.append(f"{sensor_type} is critically high ({mean}{info.unit}); act immediately.")
    elif mean > info.optimal_high:
        recs.append(f"Lower {sensor_type} towards {info.optimal_low:g}-{info.optimal_high:g}{info.unit}.")

    if trend["direction"] == "rising" and mean > info.optimal_high * 0.9:
        recs.append(f"{sensor_type} keeps rising near the upper limit; monitor closely.")
    elif trend["direction"] == "falling" and mean < info.optimal_low * 1.1:
        recs.append(f"{sensor_type} keeps falling near the lower limit; monitor closely.")

    if any(a["severity"] == "high" for a in anomalies):
        recs.append(f"Check the {sensor_type} sensor and surroundings for sudden disturbances.")

    return recs


def _overall_summary(
    kind: AnalysisKind,
    sensor_analyses: List[Dict[str, Any]],
    correlations: List[Dict[str, Any]],
) -> str:
    in_range = []
    out_of_range = []
    for analysis in sensor_analyses:
        info = SENSOR_TYPE_INFO[analysis["sensor_type"]]
        mean = analysis["stats"]["mean"]
        if info.optimal_low <= mean <= info.optimal_high:
            in_range.append(analysis["sensor_type"])
        else:
            out_of_range.append(analysis["sensor_type"])

    anomaly_count = sum(len(a["anomalies"]) for a in sensor_analyses)
    parts = [f"{kind.value.capitalize()} analysis of {len(sensor_analyses)} sensor type(s)."]
    if in_range:
        parts.append(f"Within optimal range: {', '.join(in_range)}.")
    if out_of_range:
        parts.append(f"Outside optimal range: {', '.join(out_of_range)}.")
    parts.append(f"{anomaly_count} anomalies detected, {len(correlations)} notable correlation(s).")
    return " ".join(parts)
