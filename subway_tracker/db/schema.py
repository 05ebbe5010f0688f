"""Programmatic Alembic upgrades for startup and the CLI."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import Connection

from subway_tracker.config import AuthSettings

MIGRATIONS_PATH = Path(__file__).resolve().parents[2] / "migrations"


def build_alembic_config(database_url: str, auth_settings: AuthSettings | None = None) -> Config:
    """Build an Alembic config pointing at the bundled revision scripts."""
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_PATH))
    config.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    if auth_settings is not None:
        config.attributes["auth_settings"] = auth_settings
    return config


def upgrade_schema(
    connection: Connection,
    database_url: str,
    auth_settings: AuthSettings | None = None,
    revision: str = "head",
) -> None:
    """Run Alembic upgrade on an already-open synchronous connection."""
    config = build_alembic_config(database_url, auth_settings=auth_settings)
    config.attributes["connection"] = connection
    command.upgrade(config, revision)
