from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import mysql.connector

UTC_OFFSET = "+00:00"


@dataclass(frozen=True)
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str

    @classmethod
    def from_mapping(cls, db_config: Mapping[str, Any]) -> "DBConfig":
        """Build from a settings ``DB_CONFIG`` dict, filling local defaults."""
        return cls(
            host=str(db_config.get("host", "localhost")),
            port=int(db_config.get("port", 3306)),
            user=str(db_config.get("user", "root")),
            password=str(db_config.get("password", "")),
            database=str(db_config.get("database", "class_attendance")),
        )


class DatabaseConnection:
    """Hands out one fresh MySQL connection per repository call.

    Every connection runs with the session time zone pinned to UTC, so the
    naive UTC timestamps the services compute are stored and read back
    unchanged. ``db_cursor`` wraps each connection in a single transaction
    and closes it afterwards; nothing is pooled or shared between requests.
    """

    def __init__(self, config: DBConfig):
        self._config = config

    @property
    def database(self) -> str:
        return self._config.database

    def connect(self, *, with_database: bool = True):
        """Open a connection; ``with_database=False`` is for CREATE DATABASE."""
        kwargs = dict(
            host=self._config.host,
            port=self._config.port,
            user=self._config.user,
            password=self._config.password,
            time_zone=UTC_OFFSET,
        )
        if with_database:
            kwargs["database"] = self._config.database
        return mysql.connector.connect(**kwargs)
