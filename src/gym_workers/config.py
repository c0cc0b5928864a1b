import os
from dataclasses import dataclass

from .dates import DEFAULT_REFERENCE_TIMEZONE, normalize_timezone_name


@dataclass(frozen=True)
class Config:
    database_url: str
    listen_database_url: str
    poll_interval_seconds: float = 5.0
    batch_size: int = 10
    max_retries: int = 3
    health_port: int = 8081
    log_format: str = "json"
    reference_timezone: str = DEFAULT_REFERENCE_TIMEZONE

    @classmethod
    def from_env(cls) -> "Config":
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL must be set")

        listen_database_url = (
            os.environ.get("GYM_WORKER_LISTEN_DATABASE_URL") or database_url
        )
        reference_timezone = (
            normalize_timezone_name(os.environ.get("GYM_REFERENCE_TIMEZONE"))
            or DEFAULT_REFERENCE_TIMEZONE
        )

        return cls(
            database_url=database_url,
            listen_database_url=listen_database_url,
            poll_interval_seconds=float(os.environ.get("GYM_POLL_INTERVAL", "5.0")),
            batch_size=int(os.environ.get("GYM_BATCH_SIZE", "10")),
            max_retries=int(os.environ.get("GYM_MAX_RETRIES", "3")),
            health_port=int(os.environ.get("GYM_HEALTH_PORT", "8081")),
            log_format=os.environ.get("GYM_LOG_FORMAT", "json"),
            reference_timezone=reference_timezone,
        )
