from __future__ import annotations

from typing import Any


def success_response(data: Any = None, message: str | None = None, status_code: int = 200) -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "statusCode": status_code,
    }
