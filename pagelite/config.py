from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PAGELITE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    app_name: str = "PageLite"
    log_level: str = "INFO"

    # Local-save target; never prompts for a location
    downloads_dir: str = str(Path.home() / "Downloads")
    # Remote settings store (serverUrl/username/password); empty = per-user default
    config_file: str = ""

    stylesheet_timeout_seconds: float = 15.0
    upload_timeout_seconds: float = 60.0
    navigation_timeout_ms: int = 30000
    settle_delay_ms: int = 1000
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/122.0.0.0 Safari/537.36"
    )

    banner_enabled: bool = True
    max_filename_length: int = 120

    # Archive server (receiving end of remote-upload)
    server_data_dir: str = "./data"
    server_username: str = ""
    server_password: str = ""
    server_max_upload_mb: int = 50

    @property
    def server_max_upload_bytes(self) -> int:
        return self.server_max_upload_mb * 1024 * 1024


settings = Settings()
