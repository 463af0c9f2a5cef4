"""Page/limit handling shared by the listing services."""
from __future__ import annotations

import math
from typing import Any

from taskforge import config


def page_window(page: int | None, limit: int | None) -> tuple[int, int, int]:
    """Clamp ``page``/``limit`` to config bounds and return ``(page, limit, offset)``."""
    safe_page = max(1, int(page or 1))
    safe_limit = int(limit or config.DEFAULT_PAGE_LIMIT)
    safe_limit = max(1, min(safe_limit, config.MAX_PAGE_LIMIT))
    return safe_page, safe_limit, (safe_page - 1) * safe_limit


def envelope(items: list[Any], total: int, page: int, limit: int) -> dict[str, Any]:
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if limit else 0,
    }
