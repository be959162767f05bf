from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware

from app.core.request_context import set_request_context

MERCHANT_HEADER = "X-Merchant-ID"
USER_HEADER = "X-User-ID"
CUSTOMER_HEADER = "X-Customer-ID"


class MerchantContextMiddleware(BaseHTTPMiddleware):
    """Identidade vem do gateway upstream; aqui só propagamos os headers."""

    async def dispatch(self, request, call_next):
        merchant_id = (request.headers.get(MERCHANT_HEADER) or "").strip() or None
        user_id = (request.headers.get(USER_HEADER) or "").strip() or None
        customer_id = (request.headers.get(CUSTOMER_HEADER) or "").strip() or None

        request.state.merchant_id = merchant_id
        request.state.user_id = user_id
        request.state.customer_id = customer_id
        set_request_context(merchant_id=merchant_id, user_id=user_id)

        return await call_next(request)
