"""Database and application configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine as sqlalchemy_create_engine
from sqlalchemy.engine import Engine

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:///, mysql:// and postgresql:// URL schemes.
    """

    url: str

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order:
        1. DATABASE_URL env var (standard)
        2. CRUDLEX_DB_PATH env var (converted to sqlite:/// URL)
        3. Default: sqlite:///{base_path}/data/crudlex.db
        """
        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url)

        db_path = os.environ.get("CRUDLEX_DB_PATH")
        if db_path:
            return cls(url=f"sqlite:///{db_path}")

        if base_path:
            return cls(url=f"sqlite:///{base_path / 'data' / 'crudlex.db'}")

        return cls(url="sqlite:///crudlex.db")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_mysql(self) -> bool:
        return self.url.startswith("mysql")

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def sqlalchemy_url(self) -> str:
        """URL suitable for SQLAlchemy engine creation.

        Bare mysql:// and postgresql:// URLs get the PyMySQL and psycopg (v3)
        drivers, which the optional extras install.
        """
        if self.url.startswith("postgresql://"):
            return self.url.replace("postgresql://", "postgresql+psycopg://", 1)
        if self.url.startswith("mysql://"):
            return self.url.replace("mysql://", "mysql+pymysql://", 1)
        return self.url


def create_engine(config: DatabaseConfig) -> Engine:
    """Create a SQLAlchemy engine for the configured database.

    Raises:
        ValueError: For unsupported URL schemes.
    """
    if not (config.is_sqlite or config.is_mysql or config.is_postgresql):
        raise ValueError(f"Unsupported database URL scheme: {config.url}")

    if config.is_sqlite:
        # Ensure parent directory exists for file databases
        sqlite_path = ""
        if config.url.startswith("sqlite:///"):
            sqlite_path = config.url[len("sqlite:///"):]
        if sqlite_path and sqlite_path != ":memory:":
            Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)
        return sqlalchemy_create_engine(
            config.sqlalchemy_url, connect_args={"check_same_thread": False}
        )

    return sqlalchemy_create_engine(config.sqlalchemy_url, pool_pre_ping=True)


@dataclass
class CrudConfig:
    """Settings of a CRUDlex application."""

    database: DatabaseConfig
    definitions_path: Path
    upload_path: Path
    use_uuids: bool = False
    transactional: bool = True

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> CrudConfig:
        """Create config from environment variables.

        Reads DATABASE_URL / CRUDLEX_DB_PATH (see DatabaseConfig),
        CRUDLEX_DEFINITIONS (default crud.yaml), CRUDLEX_UPLOAD_PATH
        (default uploads), CRUDLEX_USE_UUIDS and CRUDLEX_TRANSACTIONAL.
        """
        base = base_path or Path.cwd()
        return cls(
            database=DatabaseConfig.from_env(base_path),
            definitions_path=Path(os.environ.get("CRUDLEX_DEFINITIONS") or base / "crud.yaml"),
            upload_path=Path(os.environ.get("CRUDLEX_UPLOAD_PATH") or base / "uploads"),
            use_uuids=_env_flag("CRUDLEX_USE_UUIDS", False),
            transactional=_env_flag("CRUDLEX_TRANSACTIONAL", True),
        )
