from __future__ import annotations

from typing import Dict, List

from licitasis.licitacoes.flow_policy import frontend_bundle as flow_frontend_bundle
from licitasis.pagination import DEFAULT_ITEMS_PER_PAGE, ITEMS_PER_PAGE_OPTIONS


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "LicitaSis",
    "licitacao": "Licitacao",
    "item": "Item da licitacao",
    "grupo": "Grupo de itens",
    "pedido": "Pedido",
    "contrato": "Contrato",
    "empenho": "Empenho",
    "cliente": "Cliente",
    "documentacao": "Documentacao",
    "uasg": "UASG",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "licitacao": [
        {
            "key": "AGUARDANDO",
            "label": "Aguardando",
            "description": "Licitacao cadastrada aguardando resultado.",
        },
        {
            "key": "AINDA NÃO FOI ENCERRADO",
            "label": "Ainda nao encerrada",
            "description": "Sessao publica ainda em andamento no portal.",
        },
        {
            "key": "GANHO",
            "label": "Ganha",
            "description": "Licitacao vencida pelo cliente.",
        },
        {
            "key": "AGUARDANDO PEDIDO",
            "label": "Aguardando pedido",
            "description": "Licitacao vencida aguardando o pedido do orgao.",
        },
        {
            "key": "DESCLASSIFICADO",
            "label": "Desclassificada",
            "description": "Proposta desclassificada pelo orgao.",
        },
    ],
    "pedido": [
        {
            "key": "PENDENTE",
            "label": "Pendente",
            "description": "Pedido registrado sem nenhuma etapa concluida.",
        },
        {
            "key": "EM_ANDAMENTO",
            "label": "Em andamento",
            "description": "Pedido com empenho, contrato ou entrega em curso.",
        },
        {
            "key": "CONCLUIDO",
            "label": "Concluido",
            "description": "Pedido entregue e pago.",
        },
        {
            "key": "CANCELADO",
            "label": "Cancelado",
            "description": "Pedido encerrado sem continuidade.",
        },
    ],
    "pagamento": [
        {
            "key": "PENDENTE",
            "label": "Pendente",
            "description": "Nenhum valor recebido.",
        },
        {
            "key": "PARCIAL",
            "label": "Parcial",
            "description": "Parte do valor do pedido ja foi recebida.",
        },
        {
            "key": "PAGO",
            "label": "Pago",
            "description": "Pagamento do pedido confirmado.",
        },
    ],
    "contrato": [
        {
            "key": "ATIVO",
            "label": "Ativo",
            "description": "Contrato vigente.",
        },
        {
            "key": "SUSPENSO",
            "label": "Suspenso",
            "description": "Contrato temporariamente suspenso.",
        },
        {
            "key": "ENCERRADO",
            "label": "Encerrado",
            "description": "Contrato finalizado.",
        },
    ],
    "documentacao": [
        {
            "key": "ATIVO",
            "label": "Ativo",
            "description": "Documento dentro da validade.",
        },
        {
            "key": "VENCENDO",
            "label": "Vencendo",
            "description": "Documento proximo do vencimento.",
        },
        {
            "key": "EXPIRADO",
            "label": "Expirado",
            "description": "Documento com validade vencida.",
        },
    ],
}


TIPO_LICITACAO_OPTIONS: List[str] = ["Dispensa Eletrônica", "Pregão Eletrônico"]
TIPO_ENTREGA_OPTIONS: List[str] = ["ENTREGA_UNICA", "FORNECIMENTO_ANUAL"]
TIPO_CLASSIFICACAO_OPTIONS: List[str] = ["ITEM", "GRUPO"]

TIPO_DOCUMENTO_LABELS: Dict[str, str] = {
    "IDENTIDADE_SOCIOS": "Identidade dos socios",
    "CERTIDAO_CASAMENTO": "Certidao de casamento",
    "CARTAO_CNPJ": "Cartao CNPJ",
    "CCMEI_CONTRATO_SOCIAL": "CCMEI / Contrato social",
    "INSCRICAO_ESTADUAL": "Inscricao estadual",
    "INSCRICAO_MUNICIPAL": "Inscricao municipal",
    "CERTIDAO_NEGATIVA_DEBITOS_ESTADUAIS": "Certidao negativa de debitos estaduais",
    "CERTIDAO_NEGATIVA_DEBITOS_MUNICIPAIS": "Certidao negativa de debitos municipais",
    "CERTIDAO_IMPROBIDADE_INELEGIBILIDADE": "Certidao de improbidade e inelegibilidade",
    "CERTIDAO_NEGATIVA_DEBITOS_FEDERAL": "Certidao negativa de debitos federais",
    "CERTIDAO_NEGATIVA_DEBITOS_TRABALHISTAS": "Certidao negativa de debitos trabalhistas",
    "CERTIDAO_NEGATIVA_DEBITO_FGTS": "Certidao de regularidade do FGTS",
    "CERTIDAO_FALENCIA_CONCORDATA": "Certidao de falencia e concordata",
    "BALANCO_ABERTURA": "Balanco de abertura",
    "BALANCO_PATRIMONIAL": "Balanco patrimonial",
    "ALVARA": "Alvara",
    "ATESTADO_CAPACIDADE": "Atestado de capacidade tecnica",
    "SICAF": "SICAF",
    "REGISTRO_CADASTRO_ORGAO": "Registro cadastral em orgao",
    "DRE": "Demonstracao do resultado (DRE)",
    "TERMO_AUTENTICACAO": "Termo de autenticacao",
    "NAO_INSCRICAO_CONTRIBUINTE_ESTADUAL": "Declaracao de nao inscricao estadual",
    "OUTRO": "Outro",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "error": {
        "unexpected_error": "Nao foi possivel concluir a operacao. Tente novamente.",
        "action_invalid": "Acao invalida para o registro atual.",
        "validation_error": "Verifique os campos destacados.",
        "not_found": "Registro nao encontrado.",
        "method_not_allowed": "Metodo nao permitido para este endereco.",
        "conflict": "A operacao conflita com o estado atual do registro.",
        "payload_too_large": "Arquivo excede o tamanho maximo permitido.",
        "auth_required": "Autenticacao necessaria.",
        "invalid_credentials": "Usuario ou senha invalidos.",
        "inactive_user": "Usuario inativo. Procure o administrador.",
        "token_invalid": "Sessao invalida. Faca login novamente.",
        "token_expired": "Sessao expirada. Faca login novamente.",
        "permission_denied": "Voce nao tem permissao para esta acao.",
        "rate_limit_exceeded": "Muitas requisicoes. Tente novamente em instantes.",
        "uasg_unavailable": "Servico de consulta de UASG indisponivel no momento.",
        "uasg_rejected": "A consulta de UASG foi recusada pelo servico publico.",
        "uasg_not_found": "UASG nao encontrada.",
        "uasg_code_too_short": "Informe ao menos 3 caracteres da UASG.",
        "cliente_not_found": "Cliente nao encontrado.",
        "cliente_required": "Selecione ou informe um cliente.",
        "cliente_has_licitacoes": "Cliente possui licitacoes e nao pode ser excluido.",
        "cpf_cnpj_already_registered": "CPF/CNPJ ja cadastrado.",
        "usuario_not_found": "Usuario nao encontrado.",
        "email_already_registered": "Email ja cadastrado.",
        "username_already_registered": "Nome de usuario ja cadastrado.",
        "cannot_delete_self": "Voce nao pode excluir o proprio usuario.",
        "licitacao_not_found": "Licitacao nao encontrada.",
        "licitacao_has_dependencies": "Licitacao possui pedidos ou contrato vinculados.",
        "licitacao_not_won": "Somente licitacoes ganhas podem gerar pedidos.",
        "item_not_found": "Item da licitacao nao encontrado.",
        "grupo_not_found": "Grupo nao encontrado.",
        "item_not_in_licitacao": "Item nao pertence a licitacao informada.",
        "quantity_exceeds_available": "Quantidade solicitada excede a quantidade disponivel.",
        "pedido_not_found": "Pedido nao encontrado.",
        "contrato_not_found": "Contrato nao encontrado.",
        "contrato_already_exists": "Ja existe contrato para esta licitacao.",
        "contrato_has_pedidos": "Contrato possui pedidos vinculados.",
        "documentacao_not_found": "Documento nao encontrado.",
        "arquivo_required": "Selecione um arquivo PDF.",
        "arquivo_not_pdf": "Apenas arquivos PDF sao aceitos.",
        "arquivo_not_found": "Arquivo do documento nao encontrado.",
        "item_in_use": "Item possui pedidos vinculados e nao pode ser removido.",
        "item_quantity_below_used": "Quantidade do item menor que a ja solicitada em pedidos ou contratada.",
        "item_quantity_exceeds_licitacao": "Quantidade contratada excede a quantidade licitada.",
        "contrato_blocks_pedido": "Contrato suspenso ou encerrado nao aceita novos pedidos.",
        "pedido_itens_required": "Informe ao menos um item no pedido.",
        "tipo_documento_invalid": "Tipo de documento invalido.",
        "status_invalid": "Status invalido.",
    },
    "success": {
        "login_ok": "Login realizado.",
        "cliente_deleted": "Cliente excluido.",
        "usuario_deleted": "Usuario excluido.",
        "licitacao_deleted": "Licitacao excluida.",
        "item_deleted": "Item excluido.",
        "grupo_deleted": "Grupo excluido.",
        "pedido_deleted": "Pedido excluido.",
        "contrato_deleted": "Contrato excluido.",
        "documentacao_deleted": "Documento excluido.",
        "datas_emissao_atualizadas": "Validades e status dos documentos recalculados.",
        "atestados_movidos": "Atestados de capacidade organizados.",
        "pastas_corrigidas": "Pastas dos clientes corrigidas.",
        "arquivos_movidos": "Arquivos dos documentos organizados por cliente e tipo.",
        "api_atualizada": "Dados do orgao atualizados pela API publica.",
    },
    "field": {
        "required": "Campo obrigatorio.",
        "invalid_number": "Informe um numero valido.",
        "must_be_positive": "Deve ser maior que zero.",
        "must_not_be_negative": "Nao pode ser negativo.",
        "invalid_date": "Data invalida (use AAAA-MM-DD).",
        "invalid_option": "Opcao invalida.",
        "invalid_cpf_cnpj": "CPF deve ter 11 digitos e CNPJ 14 digitos.",
        "invalid_percent": "Informe um percentual entre 0 e 100.",
        "invalid_email": "Email invalido.",
    },
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_label(group: str, key: str | None) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    return str(key or "")


def get_message(category: str, key: str, default: str | None = None) -> str:
    messages = MESSAGES.get(category, {})
    if key in messages:
        return messages[key]
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def field_message(key: str, default: str | None = None) -> str:
    return get_message("field", key, default)


def frontend_bundle() -> Dict[str, object]:
    return {
        "terms": FRIENDLY_TERMS,
        "status_groups": STATUS_GROUPS,
        "tipos_licitacao": TIPO_LICITACAO_OPTIONS,
        "tipos_entrega": TIPO_ENTREGA_OPTIONS,
        "tipos_classificacao": TIPO_CLASSIFICACAO_OPTIONS,
        "tipos_documento": [
            {"key": key, "label": label} for key, label in TIPO_DOCUMENTO_LABELS.items()
        ],
        "messages": MESSAGES,
        "flow": flow_frontend_bundle(),
        "paginacao": {
            "itens_por_pagina": list(ITEMS_PER_PAGE_OPTIONS),
            "padrao": DEFAULT_ITEMS_PER_PAGE,
        },
    }
