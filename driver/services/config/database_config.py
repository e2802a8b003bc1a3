from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, ClassVar


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the PostgreSQL metadata store."""

    name: str
    user: str
    password: str
    host: str
    port: int = 5432
    _CONNECT_TIMEOUT_SECONDS: ClassVar[int] = 1

    @staticmethod
    def _read(var_name: str) -> str:
        value = os.getenv(var_name, "")
        if not value:
            logger.warning("Variable `%s` not set.", var_name)
        return value

    @staticmethod
    def from_env() -> "DatabaseConfig":
        port_raw = os.getenv("DATABASE_PORT")
        port = 5432
        if port_raw:
            try:
                port = int(port_raw)
            except ValueError:
                raise ValueError("Invalid DATABASE_PORT; must be an integer")

        return DatabaseConfig(
            name=DatabaseConfig._read("DATABASE_NAME"),
            user=DatabaseConfig._read("DATABASE_USER"),
            password=DatabaseConfig._read("DATABASE_PASSWORD"),
            host=DatabaseConfig._read("DATABASE_HOST"),
            port=port,
        )

    def connect_kwargs(self) -> dict[str, Any]:
        # Passed as keywords so psycopg2 handles quoting of the values.
        return {
            "dbname": self.name,
            "user": self.user,
            "password": self.password,
            "host": self.host,
            "port": self.port,
            "connect_timeout": self._CONNECT_TIMEOUT_SECONDS,
            "sslmode": "disable",
            "options": "-c timezone=utc",
        }
