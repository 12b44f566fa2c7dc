from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from fieldledger.core.settings import settings
from fieldledger.db.base_metadata import target_metadata
from fieldledger.db.session import enable_sqlite_savepoints

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def get_url() -> str:
    """``alembic -x db_url=...`` wins over ``DATABASE_URL``."""
    return context.get_x_argument(as_dictionary=True).get("db_url") or settings.database_url


def skip_empty_revisions(migration_context, revision, directives) -> None:
    # An autogenerate run with no model changes should not leave an empty file behind.
    if not getattr(config.cmd_opts, "autogenerate", False):
        return
    script = directives[0]
    if script.upgrade_ops.is_empty():
        directives[:] = []


def _configure_kwargs(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "compare_server_default": True,
        # SQLite cannot ALTER constraints in place; the version/money columns need batch mode.
        "render_as_batch": url.startswith("sqlite"),
        "process_revision_directives": skip_empty_revisions,
    }


def run_migrations_offline() -> None:
    url = get_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = get_url()
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = url

    connectable = engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)
    if url.startswith("sqlite"):
        enable_sqlite_savepoints(connectable)

    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(url))

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
