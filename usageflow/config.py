# usageflow/config.py

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from usageflow.errors import MissingConfigurationError

# Project root = .../usageflow repo
PROJECT_ROOT = Path(__file__).resolve().parents[1]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _default_env_file() -> str:
    return str(PROJECT_ROOT / ".env")


@dataclass(frozen=True)
class Settings:
    table_name: str
    topic_id: str
    transformed_bucket: str

    storage_root: str
    redis_url: Optional[str] = None
    webhook_url: Optional[str] = None
    log_level: str = "INFO"

    def require(self, name: str) -> str:
        """Return a required identifier or raise MissingConfigurationError."""
        value = getattr(self, name)
        if not value:
            raise MissingConfigurationError(f"Missing required setting: {name}")
        return value


def _first_env(*names: str) -> str:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return ""


def get_settings() -> Settings:
    # Real environment variables win over the .env file.
    env_file = os.getenv("USAGEFLOW_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        table_name=_first_env("CALCULATED_ENERGY_TABLE_NAME", "CALCULATED_ENERGY_TABLE"),
        topic_id=_first_env("SNS_TOPIC_CALCULATOR_SUMMARY", "SNS_TOPIC_CALCULATOR_SUM"),
        transformed_bucket=_first_env("TRANSFORMED_JSON_BUCKET"),
        storage_root=os.getenv("USAGEFLOW_STORAGE_ROOT", str(PROJECT_ROOT / "data" / "buckets")),
        redis_url=os.getenv("REDIS_URL") or None,
        webhook_url=os.getenv("NOTIFY_WEBHOOK_URL") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
