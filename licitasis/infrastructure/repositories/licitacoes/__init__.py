from .cliente_repository import ClienteRepository
from .contrato_repository import ContratoRepository
from .documentacao_repository import DocumentacaoRepository
from .licitacao_repository import GrupoLicitacaoRepository, ItemLicitacaoRepository, LicitacaoRepository
from .pedido_repository import PedidoRepository
from .relatorio_repository import RelatorioRepository
from .usuario_repository import UsuarioRepository

__all__ = [
    "ClienteRepository",
    "ContratoRepository",
    "DocumentacaoRepository",
    "GrupoLicitacaoRepository",
    "ItemLicitacaoRepository",
    "LicitacaoRepository",
    "PedidoRepository",
    "RelatorioRepository",
    "UsuarioRepository",
]
