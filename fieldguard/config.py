"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables (prefix FIELDGUARD_) or a local .env file:

- FIELDGUARD_HOST, FIELDGUARD_PORT, FIELDGUARD_LOG_LEVEL: server binding and logging
- FIELDGUARD_LOCALE: language of error messages returned to clients
- FIELDGUARD_STORE_PATH: JSON file holding tokens and their permissions
"""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Server configuration with environment variable bindings."""

    # --- Server settings ---

    # "0.0.0.0" is required inside containers; use "127.0.0.1" locally
    # to only accept local connections.
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"

    # --- Access control settings ---

    # Locale for rendered error messages. Unknown locales fall back to "ru".
    locale: str = "ru"

    # Token store file, managed with scripts/manage_tokens.py.
    store_path: Path = Path("tokens.json")

    model_config = {
        "env_prefix": "FIELDGUARD_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


# Singleton instance: import this from other modules.
settings = Settings()
