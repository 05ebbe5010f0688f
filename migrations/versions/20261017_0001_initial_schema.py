"""Initial subway tracker schema with migration of earlier database layouts."""

from __future__ import annotations

from datetime import UTC, datetime

import sqlalchemy as sa
import structlog
from alembic import context, op
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection

from subway_tracker.config import AuthSettings, get_settings
from subway_tracker.services.user_service import UserService

# revision identifiers, used by Alembic.
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None

logger = structlog.get_logger(__name__)

_users = sa.table(
    "users",
    sa.column("id", sa.Integer),
    sa.column("handle", sa.String),
    sa.column("credential", sa.String),
    sa.column("created_at", sa.DateTime(timezone=True)),
)
_sessions = sa.table("sessions", sa.column("id", sa.String))
_visits = sa.table(
    "visited_stations",
    sa.column("user_id", sa.Integer),
    sa.column("station_id", sa.String),
    sa.column("visited_at"),
)


def _create_users() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("handle", sa.String(length=64), nullable=False),
        sa.Column("credential", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("handle", name="uq_users_handle"),
    )


def _create_sessions() -> None:
    op.create_table(
        "sessions",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_sessions_user_id_users", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_sessions"),
    )
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"], unique=False)


def _create_visited_stations() -> None:
    op.create_table(
        "visited_stations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.String(length=64), nullable=False),
        sa.Column("visited_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_visited_stations_user_id_users",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_visited_stations"),
        sa.UniqueConstraint(
            "user_id", "station_id", name="uq_visited_stations_user_id_station_id"
        ),
    )


def _legacy_owner_settings() -> AuthSettings:
    """Prefer settings handed over by the running application."""
    auth_settings = context.config.attributes.get("auth_settings")
    if isinstance(auth_settings, AuthSettings):
        return auth_settings
    return get_settings().auth


def _sqlite_timestamp(value: datetime) -> str:
    """Format a timestamp the way SQLAlchemy stores SQLite DATETIME values."""
    return value.strftime("%Y-%m-%d %H:%M:%S.%f")


def _ensure_legacy_owner(bind: Connection, auth_settings: AuthSettings) -> int:
    """Return the id of the legacy owner account, creating it when missing."""
    handle = auth_settings.legacy_owner_handle.strip().lower()
    existing = bind.execute(
        sa.select(_users.c.id).where(_users.c.handle == handle)
    ).scalar_one_or_none()
    if existing is not None:
        return int(existing)

    user_service = UserService(pin_hash_rounds=auth_settings.pin_hash_rounds)
    result = bind.execute(
        _users.insert().values(
            handle=handle,
            credential=user_service.hash_credential(
                auth_settings.legacy_owner_credential.get_secret_value()
            ),
            created_at=datetime.now(UTC),
        )
    )
    logger.info("legacy_owner_created", handle=handle)
    return int(result.lastrowid)


def _upgrade_plaintext_users(bind: Connection, user_columns: set[str]) -> None:
    """Rename username/pin columns in place and hash the plaintext PINs.

    Columns are renamed rather than the table rebuilt: dropping `users` would
    cascade into `visited_stations`. Existing sessions hold raw tokens, which
    never match the stored digests, so they are discarded.
    """
    if "username" in user_columns:
        op.execute("ALTER TABLE users RENAME COLUMN username TO handle")
    if "pin" in user_columns:
        op.execute("ALTER TABLE users RENAME COLUMN pin TO credential")

    auth_settings = _legacy_owner_settings()
    user_service = UserService(pin_hash_rounds=auth_settings.pin_hash_rounds)
    rows = bind.execute(
        sa.select(_users.c.id, _users.c.handle, _users.c.credential, _users.c.created_at)
    ).all()
    now = datetime.now(UTC)
    for row in rows:
        values: dict[str, object] = {"handle": str(row.handle).strip().lower()}
        if "pin" in user_columns:
            values["credential"] = user_service.hash_credential(str(row.credential))
        if row.created_at is None:
            values["created_at"] = now
        bind.execute(_users.update().where(_users.c.id == row.id).values(**values))

    if "sessions" in sa.inspect(bind).get_table_names():
        bind.execute(sa.delete(_sessions))
    logger.info("legacy_users_migrated", count=len(rows))


def _migrate_legacy_visits(bind: Connection, legacy_columns: set[str]) -> None:
    """Rebuild an unscoped visited_stations table and attach its rows to one owner."""
    legacy_table = sa.table(
        "visited_stations",
        sa.column("station_id"),
        *([sa.column("visited_at")] if "visited_at" in legacy_columns else []),
    )
    legacy_rows = bind.execute(sa.select(legacy_table)).mappings().all()

    op.drop_table("visited_stations")
    _create_visited_stations()

    owner_id = _ensure_legacy_owner(bind, _legacy_owner_settings())
    stamped_at = _sqlite_timestamp(datetime.now(UTC))
    values = [
        {
            "user_id": owner_id,
            "station_id": str(row["station_id"]),
            "visited_at": row.get("visited_at") or stamped_at,
        }
        for row in legacy_rows
        if row["station_id"] is not None
    ]
    if values:
        bind.execute(sqlite_insert(_visits).on_conflict_do_nothing(), values)
    logger.info("legacy_visits_migrated", count=len(values), owner_id=owner_id)


def upgrade() -> None:
    """Bring any earlier layout to the current schema.

    Handles an empty database, the single-user `visited_stations` table and
    the multi-user layout with plaintext `username`/`pin` columns.
    """
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        _create_users()
    else:
        user_columns = {column["name"] for column in inspector.get_columns("users")}
        if {"username", "pin"} & user_columns:
            _upgrade_plaintext_users(bind, user_columns)
    if "sessions" not in existing_tables:
        _create_sessions()
    elif "ix_sessions_expires_at" not in {
        index["name"] for index in inspector.get_indexes("sessions")
    }:
        op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"], unique=False)
    if "visited_stations" not in existing_tables:
        _create_visited_stations()
        return

    legacy_columns = {column["name"] for column in inspector.get_columns("visited_stations")}
    if "user_id" not in legacy_columns:
        _migrate_legacy_visits(bind, legacy_columns)


def downgrade() -> None:
    """Drop the schema."""
    op.drop_table("visited_stations")
    op.drop_index("ix_sessions_expires_at", table_name="sessions")
    op.drop_table("sessions")
    op.drop_table("users")
