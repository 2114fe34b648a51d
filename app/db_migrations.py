from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from flask import Flask
from sqlalchemy import create_engine, pool


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def to_sqlalchemy_url(raw_db_path: str) -> str:
    """Turn a ``DB_PATH``/``DATABASE_URL`` value into a SQLAlchemy URL."""
    raw = (raw_db_path or "").strip()
    if not raw:
        raise RuntimeError("DB_PATH is not set; the RFQ engine schema has no database to migrate.")

    if raw.startswith("postgres://"):
        raw = "postgresql://" + raw[len("postgres://") :]
    if raw.startswith(("postgresql://", "postgresql+", "sqlite://", "sqlite+pysqlite://")):
        return raw

    sqlite_path = Path(raw).expanduser().resolve()
    return f"sqlite:///{sqlite_path.as_posix()}"


def build_alembic_config(app: Flask) -> AlembicConfig:
    root = _project_root()
    alembic_ini = root / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError(f"alembic.ini not found under {root}.")

    alembic_cfg = AlembicConfig(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str((root / "migrations").as_posix()))
    alembic_cfg.set_main_option("sqlalchemy.url", to_sqlalchemy_url(app.config["DB_PATH"]))
    return alembic_cfg


def schema_revisions(cfg: AlembicConfig) -> List[Tuple[str, str]]:
    """Engine schema revisions, oldest first, as ``(revision, summary)`` pairs."""
    script = ScriptDirectory.from_config(cfg)
    revisions = [(rev.revision, rev.doc or "") for rev in script.walk_revisions()]
    revisions.reverse()
    return revisions


def current_revision(cfg: AlembicConfig) -> str | None:
    engine = create_engine(cfg.get_main_option("sqlalchemy.url"), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()


def _describe(cfg: AlembicConfig, revision: str | None) -> str:
    if revision is None:
        return "empty (no engine tables)"
    summaries = dict(schema_revisions(cfg))
    summary = summaries.get(revision, "").split(":", 1)[0].strip()
    return f"{revision} ({summary})" if summary else revision


def register_db_cli(app: Flask) -> None:
    @app.cli.group("db")
    def db_group() -> None:
        """RFQ engine schema migrations (Alembic)."""

    @db_group.command("upgrade")
    @click.argument("revision", required=False, default="head")
    def db_upgrade(revision: str) -> None:
        cfg = build_alembic_config(app)
        before = current_revision(cfg)
        command.upgrade(cfg, revision)
        after = current_revision(cfg)
        if after == before:
            click.echo(f"RFQ engine schema already at {_describe(cfg, after)}.")
        else:
            click.echo(f"RFQ engine schema upgraded from {_describe(cfg, before)} to {_describe(cfg, after)}.")

    @db_group.command("downgrade")
    @click.argument("revision", required=False, default="-1")
    def db_downgrade(revision: str) -> None:
        cfg = build_alembic_config(app)
        before = current_revision(cfg)
        command.downgrade(cfg, revision)
        click.echo(
            f"RFQ engine schema downgraded from {_describe(cfg, before)} to {_describe(cfg, current_revision(cfg))}."
        )

    @db_group.command("current")
    def db_current() -> None:
        cfg = build_alembic_config(app)
        revisions = schema_revisions(cfg)
        current = current_revision(cfg)
        head = revisions[-1][0] if revisions else None
        state = "up to date" if current == head else f"behind head {head}"
        click.echo(f"RFQ engine schema at {_describe(cfg, current)}, {state}.")

    @db_group.command("history")
    def db_history() -> None:
        cfg = build_alembic_config(app)
        current = current_revision(cfg)
        for revision, summary in schema_revisions(cfg):
            marker = "*" if revision == current else " "
            click.echo(f"{marker} {revision}  {summary.splitlines()[0] if summary else ''}".rstrip())
