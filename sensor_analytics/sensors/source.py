"""Sensor reading access: interface, in-memory and Supabase implementations."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List

from supabase import Client

from sensor_analytics.errors import PersistenceFailure
from sensor_analytics.sensors.models import Measurements, SensorDataPoint


class SensorDataSource(ABC):
    @abstractmethod
    async def fetch_range(
        self,
        sensor_id: str,
        start: datetime,
        end: datetime,
    ) -> List[SensorDataPoint]:
        """Readings with ``start <= timestamp <= end``, oldest first.

        An empty list is a valid answer, not an error.
        """
        ...


class InMemorySensorDataSource(SensorDataSource):
    def __init__(self):
        self._readings: Dict[str, List[SensorDataPoint]] = {}

    def add(self, sensor_id: str, points: Iterable[SensorDataPoint]) -> None:
        self._readings.setdefault(sensor_id, []).extend(points)

    async def fetch_range(self, sensor_id, start, end):
        points = [
            p for p in self._readings.get(sensor_id, [])
            if start <= p.timestamp <= end
        ]
        return sorted(points, key=lambda p: p.timestamp)


class SupabaseSensorDataSource(SensorDataSource):
    """Reads the gateway's ``SensorData`` table."""

    # Gateway column -> measurement field
    COLUMNS = {
        "air_temperature": "temperature",
        "air_humidity": "humidity",
        "brightness": "brightness",
        "soil_moisture": "soil_moisture",
    }

    def __init__(self, client: Client, table: str = "SensorData"):
        self._client = client
        self._table = table

    async def fetch_range(self, sensor_id, start, end):
        try:
            response = (
                self._client.table(self._table)
                .select("timestamp, " + ", ".join(self.COLUMNS))
                .eq("sensor_id", sensor_id)
                .gte("timestamp", start.isoformat())
                .lte("timestamp", end.isoformat())
                .order("timestamp")
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure(f"Failed to fetch readings for sensor {sensor_id}: {e}") from e

        return [
            SensorDataPoint(
                timestamp=row["timestamp"],
                measurements=Measurements(**{
                    field: float(row[column])
                    for column, field in self.COLUMNS.items()
                    if row.get(column) is not None
                }),
            )
            for row in response.data or []
        ]
