from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Sequence


BOOL_FIELDS = frozenset(
    {
        "is_active",
        "is_admin",
        "empenho_feito",
        "pedido_orgao_feito",
        "contrato_feito",
        "outros_documentos",
        "entrega_feita",
    }
)


def serialize_row(row: Any) -> dict:
    data = dict(row)
    for key, value in data.items():
        if key in BOOL_FIELDS and value is not None:
            data[key] = bool(value)
        elif isinstance(value, (datetime, date)):
            data[key] = value.isoformat()
        elif isinstance(value, Decimal):
            data[key] = float(value)
    return data


class BaseRepository:
    """Repository scoped to one cliente; ``cliente_id=None`` means unrestricted (admin)."""

    table: str = ""
    scope_column: str = "cliente_id"

    def __init__(self, *, cliente_id: int | None = None) -> None:
        self.cliente_id = cliente_id

    @property
    def scoped(self) -> bool:
        return self.cliente_id is not None

    def build_cliente_clause(self, *, table_alias: str | None = None, column_name: str | None = None) -> str:
        prefix = f"{table_alias.strip()}." if table_alias and str(table_alias).strip() else ""
        return f"{prefix}{column_name or self.scope_column} = ?"

    def scope_conditions(
        self,
        conditions: List[str],
        params: List[Any],
        *,
        table_alias: str | None = None,
        column_name: str | None = None,
    ) -> None:
        if not self.scoped:
            return
        conditions.append(self.build_cliente_clause(table_alias=table_alias, column_name=column_name))
        params.append(self.cliente_id)

    @staticmethod
    def where_sql(conditions: Sequence[str]) -> str:
        if not conditions:
            return ""
        return "WHERE " + " AND ".join(conditions)

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [serialize_row(row) for row in rows]

    @staticmethod
    def row_to_dict(row: Any) -> dict | None:
        return serialize_row(row) if row else None

    def update_fields(self, db, record_id: int, fields: Dict[str, Any], *, touch: bool = True) -> None:
        if not fields:
            return
        updates = [f"{column} = ?" for column in fields]
        params = list(fields.values())
        if touch:
            updates.append("updated_at = CURRENT_TIMESTAMP")
        params.append(record_id)
        db.execute(
            f"UPDATE {self.table} SET {', '.join(updates)} WHERE id = ?",
            tuple(params),
        )

    def insert(self, db, fields: Dict[str, Any]) -> int:
        columns = list(fields)
        placeholders = ", ".join("?" for _ in columns)
        cursor = db.execute(
            f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING id",
            tuple(fields[column] for column in columns),
        )
        row = cursor.fetchone()
        return int(row["id"] if isinstance(row, dict) else row[0])

    def delete_by_id(self, db, record_id: int) -> None:
        db.execute(f"DELETE FROM {self.table} WHERE id = ?", (record_id,))
