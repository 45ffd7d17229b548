import os
from dataclasses import dataclass

@dataclass(frozen=True)
class Settings:
    data_path: str = "buildathon_data.json"
    log_level: str = "INFO"

def load_settings() -> Settings:
    data_path = os.getenv("BUILDATHON_DATA_PATH", "").strip()
    log_level = os.getenv("BUILDATHON_LOG_LEVEL", "").strip().upper()
    return Settings(
        data_path=data_path or "buildathon_data.json",
        log_level=log_level or "INFO",
    )
