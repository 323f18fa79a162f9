import sqlite3
from decimal import Decimal
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g
from werkzeug.security import generate_password_hash


sqlite3.register_adapter(Decimal, float)


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    def executescript(self, sql: str):
        if self.backend != "postgres":
            return self._conn.executescript(sql)
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _split_sql_statements(sql: str) -> List[str]:
    statements = []
    current = []
    in_single = False
    in_double = False
    for ch in sql:
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == ";" and not in_single and not in_double:
            statements.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 nao instalado.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def inserted_id(cursor) -> int:
    row = cursor.fetchone()
    return int(row["id"] if isinstance(row, dict) else row[0])


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
    else:
        _init_db_sqlite(db)

    ensure_admin_user(
        db,
        email=current_app.config.get("ADMIN_EMAIL"),
        username=current_app.config.get("ADMIN_USERNAME"),
        password=current_app.config.get("ADMIN_PASSWORD"),
    )
    db.commit()


_LICITACAO_STATUSES = "'AGUARDANDO','AINDA NÃO FOI ENCERRADO','GANHO','AGUARDANDO PEDIDO','DESCLASSIFICADO'"

# Placeholders: {pk} primary key column, {ts} timestamp column type.
_SCHEMA_TEMPLATE = [
    """
    CREATE TABLE IF NOT EXISTS clientes (
        id {pk},
        cpf_cnpj TEXT NOT NULL UNIQUE,
        nome TEXT NOT NULL,
        email TEXT,
        telefone TEXT,
        endereco TEXT,
        imposto_cliente REAL CHECK (imposto_cliente IS NULL OR (imposto_cliente >= 0 AND imposto_cliente <= 100)),
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS usuarios (
        id {pk},
        email TEXT NOT NULL UNIQUE,
        username TEXT NOT NULL UNIQUE,
        full_name TEXT,
        password_hash TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        is_admin INTEGER NOT NULL DEFAULT 0,
        cliente_id INTEGER REFERENCES clientes(id) ON DELETE SET NULL,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS licitacoes (
        id {pk},
        indice INTEGER,
        cliente_id INTEGER NOT NULL REFERENCES clientes(id),
        user_criador_id INTEGER REFERENCES usuarios(id) ON DELETE SET NULL,
        descricao TEXT NOT NULL,
        uasg TEXT NOT NULL,
        tipo_licitacao TEXT,
        numero TEXT NOT NULL,
        posicao TEXT,
        data_licitacao TEXT NOT NULL,
        custo REAL NOT NULL DEFAULT 0,
        preco_inicial REAL NOT NULL DEFAULT 0,
        preco_final REAL NOT NULL DEFAULT 0,
        margem_percentual REAL NOT NULL DEFAULT 0,
        imposto REAL NOT NULL DEFAULT 0,
        imposto_nota REAL NOT NULL DEFAULT 0,
        margem_dinheiro REAL NOT NULL DEFAULT 0,
        portal TEXT NOT NULL DEFAULT 'COMPRAS NET',
        status TEXT NOT NULL DEFAULT 'AGUARDANDO' CHECK (status IN ({licitacao_statuses})),
        observacoes TEXT,
        tipo_classificacao TEXT NOT NULL DEFAULT 'ITEM' CHECK (tipo_classificacao IN ('ITEM','GRUPO')),
        api_id TEXT,
        resultado_api TEXT,
        ultima_atualizacao_api TEXT,
        nome_orgao TEXT,
        cnpj_cpf_orgao TEXT,
        cnpj_cpf_uasg TEXT,
        sigla_uf TEXT,
        codigo_municipio TEXT,
        nome_municipio_ibge TEXT,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS grupos_licitacao (
        id {pk},
        licitacao_id INTEGER NOT NULL REFERENCES licitacoes(id) ON DELETE CASCADE,
        nome TEXT NOT NULL,
        posicao INTEGER,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS itens_licitacao (
        id {pk},
        licitacao_id INTEGER NOT NULL REFERENCES licitacoes(id) ON DELETE CASCADE,
        grupo_id INTEGER REFERENCES grupos_licitacao(id) ON DELETE SET NULL,
        codigo_item TEXT NOT NULL,
        descricao TEXT NOT NULL,
        unidade_medida TEXT NOT NULL DEFAULT 'UN',
        quantidade REAL NOT NULL CHECK (quantidade > 0),
        preco_unitario REAL NOT NULL CHECK (preco_unitario > 0),
        preco_total REAL,
        custo_unitario REAL CHECK (custo_unitario IS NULL OR custo_unitario >= 0),
        custo_total REAL,
        marca_modelo TEXT,
        especificacoes_tecnicas TEXT,
        observacoes TEXT,
        posicao INTEGER,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS contratos (
        id {pk},
        licitacao_id INTEGER NOT NULL UNIQUE REFERENCES licitacoes(id),
        numero_contrato TEXT NOT NULL,
        data_contrato TEXT NOT NULL,
        valor_contrato REAL NOT NULL DEFAULT 0,
        tipo_entrega TEXT NOT NULL DEFAULT 'ENTREGA_UNICA' CHECK (
            tipo_entrega IN ('ENTREGA_UNICA','FORNECIMENTO_ANUAL')
        ),
        prazo_contrato INTEGER CHECK (prazo_contrato IS NULL OR prazo_contrato >= 0),
        status TEXT NOT NULL DEFAULT 'ATIVO' CHECK (status IN ('ATIVO','SUSPENSO','ENCERRADO')),
        observacoes TEXT,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS itens_contrato (
        id {pk},
        contrato_id INTEGER NOT NULL REFERENCES contratos(id) ON DELETE CASCADE,
        item_licitacao_id INTEGER NOT NULL REFERENCES itens_licitacao(id) ON DELETE CASCADE,
        quantidade_contratada REAL NOT NULL CHECK (quantidade_contratada > 0),
        UNIQUE (contrato_id, item_licitacao_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pedidos (
        id {pk},
        licitacao_id INTEGER NOT NULL REFERENCES licitacoes(id),
        contrato_id INTEGER REFERENCES contratos(id),
        user_criador_id INTEGER REFERENCES usuarios(id) ON DELETE SET NULL,
        empenho_feito INTEGER NOT NULL DEFAULT 0,
        empenho_data TEXT,
        empenho_observacoes TEXT,
        pedido_orgao_feito INTEGER NOT NULL DEFAULT 0,
        pedido_orgao_data TEXT,
        pedido_orgao_observacoes TEXT,
        contrato_feito INTEGER NOT NULL DEFAULT 0,
        contrato_data TEXT,
        contrato_observacoes TEXT,
        outros_documentos INTEGER NOT NULL DEFAULT 0,
        outros_documentos_descricao TEXT,
        outros_documentos_data TEXT,
        entrega_feita INTEGER NOT NULL DEFAULT 0,
        entrega_data TEXT,
        entrega_observacoes TEXT,
        status_geral TEXT NOT NULL DEFAULT 'PENDENTE' CHECK (
            status_geral IN ('PENDENTE','EM_ANDAMENTO','CONCLUIDO','CANCELADO')
        ),
        status_pagamento TEXT NOT NULL DEFAULT 'PENDENTE' CHECK (
            status_pagamento IN ('PENDENTE','PARCIAL','PAGO')
        ),
        valor_pago REAL NOT NULL DEFAULT 0,
        data_pagamento TEXT,
        data_pagamento_previsto TEXT,
        observacoes_pagamento TEXT,
        observacoes_gerais TEXT,
        numero_nota_fiscal TEXT,
        valor_nota_fiscal REAL,
        valor_total REAL NOT NULL DEFAULT 0,
        custo_total REAL NOT NULL DEFAULT 0,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS itens_pedido (
        id {pk},
        pedido_id INTEGER NOT NULL REFERENCES pedidos(id) ON DELETE CASCADE,
        item_licitacao_id INTEGER NOT NULL REFERENCES itens_licitacao(id),
        quantidade_solicitada REAL NOT NULL CHECK (quantidade_solicitada > 0),
        preco_unitario REAL NOT NULL DEFAULT 0,
        custo_unitario REAL NOT NULL DEFAULT 0,
        preco_total REAL NOT NULL DEFAULT 0,
        custo_total REAL NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS empenhos (
        id {pk},
        pedido_id INTEGER NOT NULL REFERENCES pedidos(id) ON DELETE CASCADE,
        numero_empenho TEXT NOT NULL,
        data_empenho TEXT,
        valor_empenhado REAL NOT NULL DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'EMITIDO',
        observacoes TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS documentacoes (
        id {pk},
        titulo TEXT NOT NULL,
        descricao TEXT,
        arquivo_pdf TEXT NOT NULL,
        data_upload TEXT NOT NULL,
        data_validade TEXT,
        data_emissao TEXT,
        status TEXT NOT NULL DEFAULT 'ATIVO' CHECK (status IN ('ATIVO','VENCENDO','EXPIRADO')),
        tipo_documento TEXT NOT NULL,
        cliente_id INTEGER NOT NULL REFERENCES clientes(id) ON DELETE CASCADE,
        user_upload_id INTEGER REFERENCES usuarios(id) ON DELETE SET NULL,
        dados_extraidos TEXT,
        cnpj_extraido TEXT,
        razao_social_extraida TEXT,
        data_emissao_extraida TEXT,
        numero_documento_extraido TEXT,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_licitacoes_cliente ON licitacoes (cliente_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_licitacoes_data ON licitacoes (data_licitacao)",
    "CREATE INDEX IF NOT EXISTS idx_itens_licitacao_licitacao ON itens_licitacao (licitacao_id)",
    "CREATE INDEX IF NOT EXISTS idx_pedidos_licitacao ON pedidos (licitacao_id)",
    "CREATE INDEX IF NOT EXISTS idx_itens_pedido_item ON itens_pedido (item_licitacao_id)",
    "CREATE INDEX IF NOT EXISTS idx_documentacoes_cliente ON documentacoes (cliente_id, status)",
]

SCHEMA_TABLES = [
    "documentacoes",
    "empenhos",
    "itens_pedido",
    "pedidos",
    "itens_contrato",
    "contratos",
    "itens_licitacao",
    "grupos_licitacao",
    "licitacoes",
    "usuarios",
    "clientes",
]

_UPDATED_AT_TABLES = [
    "clientes",
    "usuarios",
    "licitacoes",
    "grupos_licitacao",
    "itens_licitacao",
    "contratos",
    "pedidos",
    "documentacoes",
]


def _schema_statements(pk: str, ts: str) -> List[str]:
    return [
        statement.format(pk=pk, ts=ts, licitacao_statuses=_LICITACAO_STATUSES)
        for statement in _SCHEMA_TEMPLATE
    ] + list(_INDEXES)


def _init_db_sqlite(db: Database):
    for statement in _schema_statements("INTEGER PRIMARY KEY AUTOINCREMENT", "TEXT"):
        db.execute(statement)


def _init_db_postgres(db: Database) -> None:
    for statement in _schema_statements("SERIAL PRIMARY KEY", "TIMESTAMP"):
        db.execute(statement)
    _create_postgres_updated_at_triggers(db)


def _create_postgres_updated_at_triggers(db: Database) -> None:
    db.execute(
        """
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = CURRENT_TIMESTAMP;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """
    )

    for table in _UPDATED_AT_TABLES:
        db.execute(f"DROP TRIGGER IF EXISTS trg_{table}_updated_at ON {table}")
        db.execute(
            f"""
            CREATE TRIGGER trg_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION set_updated_at()
            """
        )


def ensure_admin_user(db, *, email: str | None, username: str | None, password: str | None) -> int | None:
    """Creates the bootstrap admin once; an existing account is left untouched."""
    email = str(email or "").strip().lower()
    username = str(username or "").strip()
    if not email or not username or not password:
        return None

    row = db.execute(
        "SELECT id FROM usuarios WHERE email = ? OR username = ? LIMIT 1",
        (email, username),
    ).fetchone()
    if row:
        return int(row["id"])

    cursor = db.execute(
        """
        INSERT INTO usuarios (email, username, full_name, password_hash, is_active, is_admin)
        VALUES (?, ?, ?, ?, 1, 1)
        RETURNING id
        """,
        (email, username, "Administrador", generate_password_hash(password)),
    )
    return inserted_id(cursor)
