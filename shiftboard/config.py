from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class AppConfig:
    environment: str
    log_level: str
    admin_token: str | None

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            environment=os.getenv("ENVIRONMENT", "local"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            admin_token=os.getenv("ADMIN_TOKEN") or None,
        )
