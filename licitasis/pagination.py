from __future__ import annotations

import math
from typing import Any, Dict, List, Sequence


ITEMS_PER_PAGE_OPTIONS = (10, 25, 50, 100)
DEFAULT_ITEMS_PER_PAGE = 25
MAX_ITEMS_PER_PAGE = 100
ELLIPSIS = "..."


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def paginate(total: int, page: Any = 1, limit: Any = DEFAULT_ITEMS_PER_PAGE) -> Dict[str, int | bool]:
    total = max(0, int(total or 0))
    limit = max(1, min(_as_int(limit, DEFAULT_ITEMS_PER_PAGE), MAX_ITEMS_PER_PAGE))
    total_pages = max(1, math.ceil(total / limit))
    page = max(1, _as_int(page, 1))
    offset = (page - 1) * limit
    return {
        "page": page,
        "limit": limit,
        "offset": offset,
        "total": total,
        "total_pages": total_pages,
        "start_item": min(offset + 1, total) if total else 0,
        "end_item": min(page * limit, total),
        "has_previous": page > 1,
        "has_next": page < total_pages,
    }


def visible_pages(current_page: int, total_pages: int, delta: int = 2) -> List[int | str]:
    """Page buttons with ``...`` gaps, always showing the first and last page."""
    current_page = int(current_page)
    total_pages = max(1, int(total_pages))
    middle = list(range(max(2, current_page - delta), min(total_pages - 1, current_page + delta) + 1))

    pages: List[int | str] = []
    if current_page - delta > 2:
        pages.extend([1, ELLIPSIS])
    else:
        pages.append(1)

    pages.extend(middle)

    if current_page + delta < total_pages - 1:
        pages.extend([ELLIPSIS, total_pages])
    elif total_pages > 1:
        pages.append(total_pages)
    return pages


def page_payload(rows: Sequence[Any], meta: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "data": list(rows),
        "total": meta["total"],
        "page": meta["page"],
        "limit": meta["limit"],
        "total_pages": meta["total_pages"],
        "start_item": meta["start_item"],
        "end_item": meta["end_item"],
        "pages": visible_pages(meta["page"], meta["total_pages"]),
    }
