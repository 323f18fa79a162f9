from __future__ import annotations

from typing import Dict, List


PROCESS_STAGES: List[Dict[str, str]] = [
    {"key": "licitacao", "label": "Licitacao"},
    {"key": "contrato", "label": "Contrato"},
    {"key": "pedido", "label": "Pedido"},
    {"key": "entrega", "label": "Entrega"},
    {"key": "pagamento", "label": "Pagamento"},
]


ACTION_LABELS: Dict[str, str] = {
    "edit_licitacao": "Editar licitacao",
    "delete_licitacao": "Excluir licitacao",
    "manage_items": "Gerenciar itens",
    "refresh_api": "Atualizar dados do orgao",
    "create_contrato": "Gerar contrato",
    "create_pedido": "Gerar pedido",
    "edit_contrato": "Editar contrato",
    "delete_contrato": "Excluir contrato",
    "edit_pedido": "Editar pedido",
    "delete_pedido": "Excluir pedido",
    "register_empenho": "Registrar empenho",
    "confirm_delivery": "Confirmar entrega",
    "confirm_payment": "Confirmar pagamento",
    "cancel_pedido": "Cancelar pedido",
    "reopen_pedido": "Reabrir pedido",
    "view_history": "Ver historico",
}


_OPEN_LICITACAO = {
    "allowed_actions": [
        "edit_licitacao",
        "delete_licitacao",
        "manage_items",
        "refresh_api",
        "create_contrato",
    ],
    "primary_action": "edit_licitacao",
}

_WON_LICITACAO = {
    "allowed_actions": [
        "edit_licitacao",
        "delete_licitacao",
        "manage_items",
        "refresh_api",
        "create_contrato",
        "create_pedido",
    ],
    "primary_action": "create_pedido",
}

_ACTIVE_PEDIDO = {
    "allowed_actions": [
        "edit_pedido",
        "delete_pedido",
        "register_empenho",
        "confirm_delivery",
        "confirm_payment",
        "cancel_pedido",
    ],
    "primary_action": "register_empenho",
}


FLOW_POLICY: Dict[str, Dict[str, Dict[str, object]]] = {
    "licitacao": {
        "AGUARDANDO": _OPEN_LICITACAO,
        "AINDA NÃO FOI ENCERRADO": _OPEN_LICITACAO,
        "GANHO": _WON_LICITACAO,
        "AGUARDANDO PEDIDO": _WON_LICITACAO,
        "DESCLASSIFICADO": {
            "allowed_actions": ["edit_licitacao", "delete_licitacao", "manage_items", "refresh_api", "view_history"],
            "primary_action": "view_history",
        },
    },
    "contrato": {
        "ATIVO": {
            "allowed_actions": ["edit_contrato", "delete_contrato", "create_pedido"],
            "primary_action": "create_pedido",
        },
        "SUSPENSO": {
            "allowed_actions": ["edit_contrato", "delete_contrato"],
            "primary_action": "edit_contrato",
        },
        "ENCERRADO": {
            "allowed_actions": ["edit_contrato", "view_history"],
            "primary_action": "view_history",
        },
    },
    "pedido": {
        "PENDENTE": _ACTIVE_PEDIDO,
        "EM_ANDAMENTO": {
            "allowed_actions": list(_ACTIVE_PEDIDO["allowed_actions"]),
            "primary_action": "confirm_delivery",
        },
        "CONCLUIDO": {
            "allowed_actions": ["edit_pedido", "view_history"],
            "primary_action": "view_history",
        },
        "CANCELADO": {
            "allowed_actions": ["edit_pedido", "delete_pedido", "reopen_pedido", "view_history"],
            "primary_action": "reopen_pedido",
        },
    },
}


def _fallback_policy() -> Dict[str, object]:
    return {"allowed_actions": [], "primary_action": None}


def status_policy(stage: str, status: str | None) -> Dict[str, object]:
    if not status:
        return _fallback_policy()
    return FLOW_POLICY.get(stage, {}).get(str(status), _fallback_policy())


def allowed_actions(stage: str, status: str | None) -> List[str]:
    actions = status_policy(stage, status).get("allowed_actions") or []
    if not isinstance(actions, list):
        return []
    return [str(action) for action in actions]


def primary_action(stage: str, status: str | None) -> str | None:
    action = status_policy(stage, status).get("primary_action")
    if not action:
        return None
    return str(action)


def action_allowed(stage: str, status: str | None, action: str) -> bool:
    if not action:
        return False
    return action in set(allowed_actions(stage, status))


def flow_meta(stage: str, status: str | None) -> Dict[str, object]:
    return {
        "stage": stage,
        "status": status,
        "allowed_actions": allowed_actions(stage, status),
        "primary_action": primary_action(stage, status),
    }


def _stage_index(stage: str) -> int:
    for idx, item in enumerate(PROCESS_STAGES):
        if item["key"] == stage:
            return idx
    return 0


def stage_for_pedido(pedido: dict) -> str:
    # Delivered orders wait on payment; paid ones stay on the last stage.
    if pedido.get("entrega_feita") or pedido.get("status_pagamento") == "PAGO":
        return "pagamento"
    if pedido.get("empenho_feito") or pedido.get("pedido_orgao_feito"):
        return "entrega"
    return "pedido"


_PEDIDO_MILESTONES = (
    "empenho_feito",
    "pedido_orgao_feito",
    "contrato_feito",
    "outros_documentos",
    "entrega_feita",
)


def sugerir_status_geral(pedido: dict) -> str:
    """Status suggested when the user leaves ``status_geral`` empty."""
    pagamento = pedido.get("status_pagamento") or "PENDENTE"
    if pedido.get("entrega_feita") and pagamento == "PAGO":
        return "CONCLUIDO"
    if any(pedido.get(flag) for flag in _PEDIDO_MILESTONES) or pagamento in {"PARCIAL", "PAGO"}:
        return "EM_ANDAMENTO"
    return "PENDENTE"


def build_process_steps(current_stage: str) -> List[Dict[str, object]]:
    current_idx = _stage_index(current_stage)
    steps: List[Dict[str, object]] = []
    for idx, stage in enumerate(PROCESS_STAGES):
        state = "future"
        if idx < current_idx:
            state = "completed"
        elif idx == current_idx:
            state = "current"
        steps.append(
            {
                "key": stage["key"],
                "label": stage["label"],
                "state": state,
            }
        )
    return steps


def frontend_bundle() -> Dict[str, object]:
    return {
        "stages": PROCESS_STAGES,
        "policy": FLOW_POLICY,
        "action_labels": ACTION_LABELS,
    }
