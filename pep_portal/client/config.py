from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from pep_portal.core.config import ENV_FILE


class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PEP_", env_file=ENV_FILE, extra="ignore")

    API_BASE_URL: str = "http://localhost:8000"
    STORAGE_DIR: str = str(Path.home() / ".pep_portal")
    DOWNLOADS_DIR: str = str(Path.home() / "Downloads")
    REQUEST_TIMEOUT_SECONDS: float = 15.0
    ERROR_LOG_MAX_ENTRIES: int = 100


client_settings = ClientSettings()
