"""Runtime configuration, read from the environment once at startup."""

import os
from dataclasses import dataclass, field
from typing import Self

STORE_MEMORY = "memory"
STORE_SQL = "sql"


def _split_origins(value: str) -> list[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    store: str = STORE_MEMORY
    database_url: str = "sqlite:///:memory:"
    retention_hours: float = 24
    reap_interval_seconds: float = 60 * 60
    sweep_interval_seconds: float = 1.0
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3001
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])

    @property
    def retention_ms(self) -> int:
        return int(self.retention_hours * 60 * 60 * 1000)

    @classmethod
    def from_env(cls) -> Self:
        return cls(
            store=os.getenv("CHESS_RELAY_STORE", STORE_MEMORY).lower(),
            database_url=os.getenv("CHESS_RELAY_DATABASE_URL", "sqlite:///:memory:"),
            retention_hours=float(os.getenv("CHESS_RELAY_RETENTION_HOURS", "24")),
            reap_interval_seconds=float(
                os.getenv("CHESS_RELAY_REAP_INTERVAL_SECONDS", "3600")
            ),
            sweep_interval_seconds=float(
                os.getenv("CHESS_RELAY_SWEEP_INTERVAL_SECONDS", "1.0")
            ),
            log_level=os.getenv("CHESS_RELAY_LOG_LEVEL", "INFO").upper(),
            host=os.getenv("CHESS_RELAY_HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3001")),
            allowed_origins=_split_origins(os.getenv("ALLOWED_ORIGINS", "*")),
        )
