from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy.orm import Query

from app.pms.errors import ServiceError

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def parse_pagination(args: Mapping[str, Any]) -> tuple[int, int]:
    """Read limit/offset query args. limit is 1..100 (default 20), offset >= 0."""
    try:
        limit = int(args.get("limit") or DEFAULT_LIMIT)
        offset = int(args.get("offset") or 0)
    except (TypeError, ValueError):
        raise ServiceError("limit and offset must be integers.") from None
    if limit < 1 or limit > MAX_LIMIT:
        raise ServiceError(f"limit must be between 1 and {MAX_LIMIT}.")
    if offset < 0:
        raise ServiceError("offset must be 0 or greater.")
    return limit, offset


def paginate(q: Query, args: Mapping[str, Any], serialize: Callable[[Any], dict]) -> dict[str, Any]:
    """Run an ordered query page and wrap it in the list response envelope."""
    limit, offset = parse_pagination(args)
    total = q.order_by(None).count()
    rows = q.offset(offset).limit(limit).all()
    total_pages = (total + limit - 1) // limit
    return {
        "data": [serialize(r) for r in rows],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(rows) < total,
            "total_pages": total_pages,
            "current_page": offset // limit + 1,
        },
    }
