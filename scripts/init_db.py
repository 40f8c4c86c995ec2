"""Bring the configured database to the latest schema, or check it for drift.

Usage::

    python scripts/init_db.py            # alembic upgrade head, then list tables
    python scripts/init_db.py --check    # compare live schema with the models
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from alembic import command
from alembic.autogenerate import api as ag_api
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from rifazo.db.engine import make_engine
from rifazo.models import Base

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to ``target_revision``."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def missing_tables(engine) -> list[str]:
    """Return model tables that the database does not have."""
    present = set(inspect(engine).get_table_names())
    return sorted(set(Base.metadata.tables) - present)


def _print_ops(ops, indent: int = 0) -> None:
    for op in ops:
        print(f"{'  ' * indent}- {op}")
        sub_ops = getattr(op, "ops", None)
        if sub_ops:
            _print_ops(sub_ops, indent + 1)


def check_drift(engine) -> int:
    """Return 0 when the live schema matches the models, 1 on drift, 2 on error."""
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except SQLAlchemyError as exc:
        print(f"Schema drift check: ERROR for {url_display}: {exc}", file=sys.stderr)
        return 2

    if upgrade_ops is None or upgrade_ops.is_empty():
        print(f"Schema drift check: OK for {url_display}.")
        return 0
    print(f"Schema drift check: FAILED for {url_display}. Differences:")
    _print_ops(upgrade_ops.ops or [])
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--check",
        action="store_true",
        help="only compare the live schema with the models; do not migrate",
    )
    args = parser.parse_args(argv)

    engine = make_engine()
    if args.check:
        return check_drift(engine)

    upgrade_db()
    missing = missing_tables(engine)
    if missing:
        print("Missing tables after upgrade:", ", ".join(missing), file=sys.stderr)
        return 1
    print("Current tables:", ", ".join(sorted(inspect(engine).get_table_names())))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
