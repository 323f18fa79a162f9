from __future__ import annotations

from pathlib import Path

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from flask import Flask
from werkzeug.security import generate_password_hash


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _normalize_postgres_url(url: str) -> str:
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://") :]
    return url


def to_sqlalchemy_url(raw_db_path: str) -> str:
    raw = (raw_db_path or "").strip()
    if not raw:
        raise RuntimeError("DB_PATH indefinido para migrations.")

    normalized = _normalize_postgres_url(raw)
    if normalized.startswith(("postgresql://", "postgresql+")):
        return normalized
    if normalized.startswith(("sqlite://", "sqlite+pysqlite://")):
        return normalized

    sqlite_path = Path(normalized).expanduser().resolve()
    return f"sqlite:///{sqlite_path.as_posix()}"


def build_alembic_config(app: Flask) -> AlembicConfig:
    root = _project_root()
    alembic_ini = root / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError("alembic.ini nao encontrado na raiz do projeto.")

    alembic_cfg = AlembicConfig(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str((root / "migrations").as_posix()))
    alembic_cfg.set_main_option("sqlalchemy.url", to_sqlalchemy_url(app.config["DB_PATH"]))
    return alembic_cfg


def upsert_admin(db, *, email: str, username: str, password: str, full_name: str | None = None) -> int:
    email = email.strip().lower()
    username = username.strip()
    password_hash = generate_password_hash(password)
    row = db.execute(
        "SELECT id FROM usuarios WHERE email = ? OR username = ? LIMIT 1",
        (email, username),
    ).fetchone()
    if row:
        user_id = int(row["id"])
        db.execute(
            """
            UPDATE usuarios
            SET email = ?, username = ?, password_hash = ?, is_admin = 1, is_active = 1,
                full_name = COALESCE(?, full_name), updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (email, username, password_hash, full_name, user_id),
        )
        return user_id

    from licitasis.db import inserted_id

    cursor = db.execute(
        """
        INSERT INTO usuarios (email, username, full_name, password_hash, is_active, is_admin)
        VALUES (?, ?, ?, ?, 1, 1)
        RETURNING id
        """,
        (email, username, full_name or "Administrador", password_hash),
    )
    return inserted_id(cursor)


def register_db_cli(app: Flask) -> None:
    @app.cli.group("db")
    def db_group() -> None:
        """Comandos de migration (Alembic)."""

    @db_group.command("upgrade")
    @click.argument("revision", required=False, default="head")
    def db_upgrade(revision: str) -> None:
        cfg = build_alembic_config(app)
        command.upgrade(cfg, revision)
        click.echo(f"Migration aplicada ate {revision}.")

    @db_group.command("downgrade")
    @click.argument("revision", required=False, default="-1")
    def db_downgrade(revision: str) -> None:
        cfg = build_alembic_config(app)
        command.downgrade(cfg, revision)
        click.echo(f"Rollback aplicado ate {revision}.")

    @db_group.command("current")
    def db_current() -> None:
        cfg = build_alembic_config(app)
        command.current(cfg, verbose=True)

    @db_group.command("create-admin")
    @click.option("--email", required=True)
    @click.option("--username", required=True)
    @click.option("--password", required=True, prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--full-name", default=None)
    def db_create_admin(email: str, username: str, password: str, full_name: str | None) -> None:
        from licitasis.db import get_db

        db = get_db()
        user_id = upsert_admin(db, email=email, username=username, password=password, full_name=full_name)
        db.commit()
        click.echo(f"Administrador {username} pronto (id={user_id}).")
