from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone

from app.core.request_context import CONTEXT_FIELDS, current_request_context

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Dados de cliente (email/telefone) e credenciais nunca vão para o log em claro
_MASKED_KEYS = ("authorization", "token", "email", "phone", "voucher_code")
_MASK_RE = re.compile(
    r"((?:%s)\s*[:=]\s*(?:bearer\s+)?)([^\s\",}]+)" % "|".join(_MASKED_KEYS),
    re.IGNORECASE,
)

_OPTIONAL_FIELDS = ("endpoint", "method", "status_code", "duration_ms", "order_id", "error_code")


def mask_sensitive(text: str) -> str:
    return _MASK_RE.sub(r"\1***", text)


class RequestContextFilter(logging.Filter):
    """Completa o record com o contexto da request quando o chamador não passou via `extra`."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = current_request_context()
        for field in CONTEXT_FIELDS:
            if getattr(record, field, None) is None:
                setattr(record, field, getattr(context, field))
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        RequestContextFilter().filter(record)
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": mask_sensitive(record.getMessage()),
        }
        payload.update({field: getattr(record, field, None) for field in CONTEXT_FIELDS})
        payload.update(
            {field: getattr(record, field) for field in _OPTIONAL_FIELDS if getattr(record, field, None) is not None}
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None) -> None:
    effective_level = (level or LOG_LEVEL).upper()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter("%(message)s"))
    handler.addFilter(RequestContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(effective_level)

    # access log do uvicorn duplica o "request completed" da observabilidade
    logging.getLogger("uvicorn").setLevel(effective_level)
    logging.getLogger("uvicorn.error").setLevel(effective_level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
