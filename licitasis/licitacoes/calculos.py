"""Tax, margin and total arithmetic for bids, items, orders and contracts.

Money is handled as ``Decimal`` and rounded half-up to cents, which matches
what users see in the forms (``toFixed(2)``). Public helpers return plain
floats so results can be stored and serialised directly.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Mapping


DEFAULT_TAX_RATE = 6.0
CENTS = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO


def quantize_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def money(value: Any) -> float:
    return float(quantize_money(value))


def tax_rate_for(imposto_cliente: Any, default: float = DEFAULT_TAX_RATE) -> float:
    """Cliente tax percentage, falling back to the default when unset or zero."""
    rate = to_decimal(imposto_cliente)
    if rate:
        return float(rate)
    return float(default)


def calcular_imposto(preco_final: Any, rate: Any) -> float:
    return money(to_decimal(preco_final) * to_decimal(rate) / HUNDRED)


def calcular_imposto_nota(preco_final: Any, rate: Any) -> float:
    return calcular_imposto(preco_final, rate)


def calcular_margem_percentual(custo: Any, preco_final: Any, rate: Any) -> float:
    custo_dec = to_decimal(custo)
    preco_dec = to_decimal(preco_final)
    if custo_dec <= 0 or preco_dec <= 0:
        return 0.0
    imposto = preco_dec * to_decimal(rate) / HUNDRED
    return money(preco_dec / (custo_dec + imposto) * HUNDRED)


def calcular_margem_dinheiro(custo: Any, preco_final: Any, rate: Any) -> float:
    custo_dec = to_decimal(custo)
    preco_dec = to_decimal(preco_final)
    if custo_dec <= 0 or preco_dec <= 0:
        return 0.0
    imposto = preco_dec * to_decimal(rate) / HUNDRED
    return money(preco_dec - custo_dec - imposto)


def derive_licitacao_fields(custo: Any, preco_final: Any, rate: Any) -> Dict[str, float]:
    if to_decimal(custo) <= 0 or to_decimal(preco_final) <= 0:
        return {
            "imposto": 0.0,
            "imposto_nota": 0.0,
            "margem_percentual": 0.0,
            "margem_dinheiro": 0.0,
        }
    return {
        "imposto": calcular_imposto(preco_final, rate),
        "imposto_nota": calcular_imposto_nota(preco_final, rate),
        "margem_percentual": calcular_margem_percentual(custo, preco_final, rate),
        "margem_dinheiro": calcular_margem_dinheiro(custo, preco_final, rate),
    }


def line_total(quantidade: Any, unitario: Any) -> float | None:
    qty = to_decimal(quantidade)
    unit = to_decimal(unitario)
    if qty <= 0 or unit <= 0:
        return None
    return money(qty * unit)


def calcular_item_totais(quantidade: Any, preco_unitario: Any, custo_unitario: Any) -> Dict[str, float | None]:
    return {
        "preco_total": line_total(quantidade, preco_unitario),
        "custo_total": line_total(quantidade, custo_unitario),
    }


def next_codigo_item(existing_codes: Iterable[Any]) -> str:
    highest = 0
    for code in existing_codes:
        text = str(code or "").strip()
        if text.isdigit():
            highest = max(highest, int(text))
    return str(highest + 1).zfill(3)


def markup_percentual(valor: Any, custo: Any) -> float:
    custo_dec = to_decimal(custo)
    if custo_dec <= 0:
        return 0.0
    return money((to_decimal(valor) - custo_dec) / custo_dec * HUNDRED)


def totais_por_itens(itens: Iterable[Mapping[str, Any]], rate: Any) -> Dict[str, float]:
    """Bid header values derived from its itemised lines."""
    valor_total = ZERO
    custo_total = ZERO
    for item in itens:
        valor_total += to_decimal(item.get("preco_total"))
        custo_total += to_decimal(item.get("custo_total"))

    imposto = valor_total * to_decimal(rate) / HUNDRED
    return {
        "preco_inicial": money(valor_total),
        "preco_final": money(valor_total),
        "custo": money(custo_total),
        "margem_percentual": markup_percentual(valor_total, custo_total),
        "imposto": money(imposto),
        "imposto_nota": money(imposto),
        "margem_dinheiro": money(valor_total - custo_total - imposto),
    }


def totais_pedido(linhas: Iterable[Mapping[str, Any]]) -> Dict[str, float]:
    valor_total = ZERO
    custo_total = ZERO
    for linha in linhas:
        quantidade = to_decimal(linha.get("quantidade_solicitada", linha.get("quantidade")))
        valor_total += quantidade * to_decimal(linha.get("preco_unitario"))
        custo_total += quantidade * to_decimal(linha.get("custo_unitario"))
    return {"valor_total": money(valor_total), "custo_total": money(custo_total)}


def resumo_financeiro(itens: Iterable[Mapping[str, Any]]) -> Dict[str, float | int]:
    total_itens = 0
    total_quantidade = ZERO
    preco_final = ZERO
    custo_real = ZERO
    for item in itens:
        quantidade = to_decimal(item.get("quantidade"))
        total_itens += 1
        total_quantidade += quantidade
        preco_final += quantidade * to_decimal(item.get("preco_unitario"))
        custo_real += quantidade * to_decimal(item.get("custo_unitario"))
    return {
        "total_itens": total_itens,
        "total_quantidade": float(total_quantidade),
        "preco_final": money(preco_final),
        "custo_real": money(custo_real),
        "margem": markup_percentual(preco_final, custo_real),
    }
