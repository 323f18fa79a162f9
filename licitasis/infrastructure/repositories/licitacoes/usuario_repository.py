from __future__ import annotations

from typing import Any, Dict

from licitasis.infrastructure.repositories.base import BaseRepository


_PUBLIC_COLUMNS = """
    u.id, u.email, u.username, u.full_name, u.is_active, u.is_admin, u.cliente_id,
    u.created_at, u.updated_at, c.nome AS cliente_nome
"""


class UsuarioRepository(BaseRepository):
    table = "usuarios"

    def get_by_id(self, db, usuario_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_PUBLIC_COLUMNS}
            FROM usuarios u
            LEFT JOIN clientes c ON c.id = u.cliente_id
            WHERE u.id = ?
            LIMIT 1
            """,
            (usuario_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def find_for_login(self, db, login: str) -> dict | None:
        row = db.execute(
            """
            SELECT id, email, username, full_name, password_hash, is_active, is_admin, cliente_id
            FROM usuarios
            WHERE username = ? OR email = ?
            ORDER BY CASE WHEN username = ? THEN 0 ELSE 1 END
            LIMIT 1
            """,
            (login, login.lower(), login),
        ).fetchone()
        return self.row_to_dict(row)

    def list_all(self, db) -> list[dict]:
        rows = db.execute(
            f"""
            SELECT {_PUBLIC_COLUMNS}
            FROM usuarios u
            LEFT JOIN clientes c ON c.id = u.cliente_id
            ORDER BY u.full_name ASC, u.username ASC, u.id ASC
            """
        ).fetchall()
        return self.rows_to_dicts(rows)

    def email_taken(self, db, email: str, *, exclude_id: int | None = None) -> bool:
        row = db.execute(
            "SELECT id FROM usuarios WHERE email = ? AND id <> ? LIMIT 1",
            (email, exclude_id or 0),
        ).fetchone()
        return row is not None

    def username_taken(self, db, username: str, *, exclude_id: int | None = None) -> bool:
        row = db.execute(
            "SELECT id FROM usuarios WHERE username = ? AND id <> ? LIMIT 1",
            (username, exclude_id or 0),
        ).fetchone()
        return row is not None

    def create(self, db, fields: Dict[str, Any]) -> int:
        return self.insert(db, fields)

    def update(self, db, usuario_id: int, fields: Dict[str, Any]) -> None:
        self.update_fields(db, usuario_id, fields)

    def delete(self, db, usuario_id: int) -> None:
        self.delete_by_id(db, usuario_id)
