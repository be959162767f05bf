# app/deps.py
from __future__ import annotations

import logging

from fastapi import Request

from app.core.errors import MerchantNotFoundError
from app.services.merchant_context import (
    get_current_customer_id,
    get_current_merchant_id,
    get_current_user_id,
)

logger = logging.getLogger(__name__)


def require_merchant_context(request: Request) -> int:
    """Merchant vem do gateway (X-Merchant-ID). Sem ele não há escopo para a operação."""
    merchant_id = get_current_merchant_id(request)
    if merchant_id is None:
        logger.warning("Missing merchant context endpoint=%s %s", request.method, request.url.path)
        raise MerchantNotFoundError("Merchant context is required.")
    return merchant_id


def get_request_user_id(request: Request) -> int | None:
    return get_current_user_id(request)


def get_request_customer_id(request: Request) -> int | None:
    return get_current_customer_id(request)
