from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    backend_url: str = "http://localhost:5000"
    timeout: float = 60.0
    upload_timeout: float = 300.0
    transcribe_timeout: float = 180.0
    ai_edit_timeout: float = 120.0
    data_dir: Path = Path.home() / ".pagelm"
    prefs_filename: str = "prefs.db"
    log_level: str = "WARNING"

    model_config = {"env_prefix": "PAGELM_"}


settings = Settings()
