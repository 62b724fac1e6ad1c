import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

# Import models so Base.metadata is fully populated for autogenerate
from school_eval.models.audit_event import AuditEvent  # noqa: F401
from school_eval.models.composition_session import CompositionSession  # noqa: F401
from school_eval.models.curriculum_material import CurriculumMaterial  # noqa: F401
from school_eval.models.directory import Course, Subject  # noqa: F401
from school_eval.models.evaluation import Evaluation, EvaluationQuestion  # noqa: F401
from school_eval.models.grade import Grade  # noqa: F401
from school_eval.models.idempotency import IdempotencyKey  # noqa: F401
from school_eval.models.notification import Notification  # noqa: F401
from school_eval.models.question import Question  # noqa: F401
from school_eval.models.rbac import Role, UserRole  # noqa: F401
from school_eval.models.user import User  # noqa: F401

from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

from school_eval.core.config import settings
from school_eval.db.base import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# the app settings own the connection string
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
