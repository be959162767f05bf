from __future__ import annotations

from fastapi import Request


def _as_int(value) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_current_merchant_id(request: Request) -> int | None:
    return _as_int(getattr(request.state, "merchant_id", None))


def get_current_user_id(request: Request) -> int | None:
    return _as_int(getattr(request.state, "user_id", None))


def get_current_customer_id(request: Request) -> int | None:
    return _as_int(getattr(request.state, "customer_id", None))
