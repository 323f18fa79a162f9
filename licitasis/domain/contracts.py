from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class ServiceOutput:
    payload: Any
    status_code: int = 200


@dataclass(frozen=True)
class AuthLoginInput:
    username: str
    password: str


@dataclass(frozen=True)
class AuthUser:
    id: int
    email: str
    username: str
    full_name: str | None
    is_active: bool
    is_admin: bool
    cliente_id: int | None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "full_name": self.full_name,
            "is_active": self.is_active,
            "is_admin": self.is_admin,
            "cliente_id": self.cliente_id,
        }


@dataclass(frozen=True)
class LicitacaoComItensInput:
    header: Dict[str, Any]
    tipo_classificacao: str
    itens: List[Dict[str, Any]] = field(default_factory=list)
    grupos: List[Dict[str, Any]] = field(default_factory=list)
    linhas_informadas: bool = True


@dataclass(frozen=True)
class PedidoLinhaInput:
    item_licitacao_id: int
    quantidade_solicitada: float


@dataclass(frozen=True)
class ContratoItemInput:
    item_licitacao_id: int
    quantidade_contratada: float


@dataclass(frozen=True)
class UploadedDocumento:
    filename: str
    content: bytes
