from typing import Any, Optional
import math


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    """Success envelope shared by every endpoint: {success, data, message?}."""
    body: dict = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def pagination(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }
