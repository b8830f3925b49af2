"""Runtime settings, read from the environment.

Command-line flags override these; see `app.py`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .mqtt_topics import DEFAULT_NAMESPACE


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///court_queue.db"
    mqtt_host: str = "127.0.0.1"
    mqtt_port: int = 1883
    namespace: str = DEFAULT_NAMESPACE
    jwt_secret: str = "dev-secret-key-change-in-prod"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            mqtt_host=os.getenv("MQTT_HOST", cls.mqtt_host),
            mqtt_port=int(os.getenv("MQTT_PORT", str(cls.mqtt_port))),
            namespace=os.getenv("MQTT_NAMESPACE", cls.namespace),
            jwt_secret=os.getenv("JWT_SECRET", cls.jwt_secret),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )
