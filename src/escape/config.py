"""Configuration for Magnificent Escape."""

import os
from dataclasses import dataclass
from pathlib import Path


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


@dataclass
class Config:
    """Application configuration."""

    database_url: str = "sqlite:///./escape.db"
    host: str = "localhost"
    port: int = 1965
    certfile: Path | None = None
    keyfile: Path | None = None
    log_level: str = "INFO"
    log_file: Path | None = None
    json_logs: bool = False
    hash_fingerprints: bool = True
    strict_state: bool = False
    hint_limit: int = 1000

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from ESCAPE_* environment variables."""
        certfile = os.getenv("ESCAPE_CERTFILE")
        keyfile = os.getenv("ESCAPE_KEYFILE")
        log_file = os.getenv("ESCAPE_LOG_FILE")

        return cls(
            database_url=os.getenv("ESCAPE_DATABASE_URL", cls.database_url),
            host=os.getenv("ESCAPE_HOST", cls.host),
            port=int(os.getenv("ESCAPE_PORT", str(cls.port))),
            certfile=Path(certfile) if certfile else None,
            keyfile=Path(keyfile) if keyfile else None,
            log_level=os.getenv("ESCAPE_LOG_LEVEL", cls.log_level),
            log_file=Path(log_file) if log_file else None,
            json_logs=_flag("ESCAPE_JSON_LOGS", cls.json_logs),
            hash_fingerprints=_flag("ESCAPE_HASH_FINGERPRINTS", cls.hash_fingerprints),
            strict_state=_flag("ESCAPE_STRICT_STATE", cls.strict_state),
            hint_limit=int(os.getenv("ESCAPE_HINT_LIMIT", str(cls.hint_limit))),
        )
