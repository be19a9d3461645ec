from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Library layout
    library_dir: Path | None = None
    crate_dir_name: str = ".crate"
    database_file_name: str = "library.db"
    artwork_dir_name: str = "artwork"

    # Scanning
    hash_workers: int = 1
    scan_on_startup: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None


settings = Settings()
