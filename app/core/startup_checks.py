from __future__ import annotations

import logging
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Engine

from app.core.config import AUTO_APPLY_MIGRATIONS, DATABASE_URL, ENV_NORMALIZED, IS_PROD, IS_TEST

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class MigrationState:
    current: frozenset
    expected: frozenset

    @property
    def is_current(self) -> bool:
        return self.current == self.expected


def validate_database_environment() -> None:
    if IS_PROD and DATABASE_URL.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def should_auto_apply() -> bool:
    """AUTO_APPLY_MIGRATIONS explícito vence; sem valor, só aplica em produção."""
    if AUTO_APPLY_MIGRATIONS in _FALSY:
        return False
    if AUTO_APPLY_MIGRATIONS in _TRUTHY:
        return True
    return AUTO_APPLY_MIGRATIONS == "" and IS_PROD


def _require_config(alembic_config_path: Path) -> Config:
    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")
    config = Config(str(alembic_config_path))
    config.set_main_option("script_location", str(alembic_config_path.parent / "alembic"))
    return config


def apply_migrations(*, alembic_config_path: Path) -> None:
    if not should_auto_apply():
        logger.info(
            "%s auto migration skipped env=%s flag=%r",
            MIGRATIONS_PREFIX,
            ENV_NORMALIZED,
            AUTO_APPLY_MIGRATIONS,
        )
        return

    _require_config(alembic_config_path)
    logger.info("%s upgrading to head", MIGRATIONS_PREFIX)
    # processo separado: o env.py do alembic reconfigura o logging
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "-c", str(alembic_config_path), "upgrade", "head"],
        cwd=str(alembic_config_path.parent),
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        logger.critical(
            "%s upgrade failed returncode=%s stderr=%s",
            MIGRATIONS_PREFIX,
            result.returncode,
            (result.stderr or "").strip(),
        )
        raise RuntimeError("Automatic migration failed")
    logger.info("%s upgrade finished", MIGRATIONS_PREFIX)


def read_migration_state(*, engine: Engine, alembic_config_path: Path) -> MigrationState:
    script = ScriptDirectory.from_config(_require_config(alembic_config_path))
    with engine.connect() as connection:
        current = MigrationContext.configure(connection).get_current_heads()
    return MigrationState(current=frozenset(current), expected=frozenset(script.get_heads()))


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    if IS_TEST or DATABASE_URL.startswith("sqlite"):
        # testes e dev em SQLite usam create_all
        logger.info("%s migration check skipped url_scheme=%s", MIGRATIONS_PREFIX, DATABASE_URL.split(":", 1)[0])
        return

    state = read_migration_state(engine=engine, alembic_config_path=alembic_config_path)
    if not state.current:
        logger.critical("%s database has no migration state", MIGRATIONS_PREFIX)
        raise RuntimeError("Database has no migration state")
    if not state.is_current:
        logger.critical(
            "%s pending migrations current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(state.current),
            sorted(state.expected),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s database at head=%s", MIGRATIONS_PREFIX, sorted(state.current))
