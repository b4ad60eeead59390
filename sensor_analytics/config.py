"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Storage
    # "supabase" reads the gateway tables; "memory" starts empty and is for tests
    storage_backend: str = "supabase"
    analytics_table: str = "SensorAnalytics"
    sensor_data_table: str = "SensorData"

    # Analysis engine
    anomaly_zscore_threshold: float = 2.5
    forecast_horizon: int = 6

    # Job processing
    progress_step_hold_seconds: float = 0.5
    recover_pending_on_startup: bool = True

    # Service
    compute_port: int = 8001
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
