import os
import sys
from logging.config import fileConfig

from alembic import context

# Make the project root importable so app and extensions resolve
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app  # noqa: E402
from extensions import db as _db  # noqa: E402
import mail_database  # noqa: E402,F401  registers the models on the metadata

config = context.config

# alembic.ini lives next to this file; logging is left alone when it is missing
if config.config_file_name is not None and os.path.exists(config.config_file_name):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = _db.metadata

app = create_app()


def run_migrations_offline():
    """Run migrations in 'offline' mode, emitting SQL for the configured URL."""
    with app.app_context():
        url = app.config['SQLALCHEMY_DATABASE_URI']
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run migrations in 'online' mode against the Flask app's engine."""
    with app.app_context():
        connectable = _db.engine

        with connectable.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
                render_as_batch=connection.dialect.name == 'sqlite',
            )

            with context.begin_transaction():
                context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
