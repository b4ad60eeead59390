"""Sensor reading data model and per-measurement metadata."""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, Field


class Measurements(BaseModel):
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    brightness: Optional[float] = None
    soil_moisture: Optional[float] = None


class SensorDataPoint(BaseModel):
    """One reading of a sensor node at a point in time."""
    timestamp: datetime
    measurements: Measurements = Field(default_factory=Measurements)


@dataclass(frozen=True)
class SensorTypeInfo:
    """Indoor plant ranges for one measurement type."""
    unit: str
    optimal_low: float
    optimal_high: float
    critical_low: float
    critical_high: float
    description: str


SENSOR_TYPES: Tuple[str, ...] = ("temperature", "humidity", "brightness", "soil_moisture")

SENSOR_TYPE_INFO: Dict[str, SensorTypeInfo] = {
    "temperature": SensorTypeInfo("°C", 18.0, 24.0, 15.0, 28.0, "Indoor room temperature for houseplants"),
    "humidity": SensorTypeInfo("%", 40.0, 60.0, 30.0, 70.0, "Indoor air humidity for houseplants"),
    "brightness": SensorTypeInfo("lux", 1000.0, 3000.0, 500.0, 5000.0, "Indoor light levels for houseplants"),
    "soil_moisture": SensorTypeInfo("%", 40.0, 60.0, 20.0, 80.0, "Soil moisture levels for houseplants"),
}
