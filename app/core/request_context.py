from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, fields, replace


@dataclass(frozen=True)
class RequestContext:
    """Identidade da request corrente, lida pelo filtro de log."""

    request_id: str | None = None
    merchant_id: str | None = None
    user_id: str | None = None


_EMPTY = RequestContext()
_current: ContextVar[RequestContext] = ContextVar("ordering_request_context", default=_EMPTY)

CONTEXT_FIELDS = tuple(field.name for field in fields(RequestContext))


def current_request_context() -> RequestContext:
    return _current.get()


def set_request_context(**values: str | None) -> RequestContext:
    """Mescla os valores informados no contexto atual; None mantém o valor anterior."""
    unknown = set(values) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"unknown request context fields: {sorted(unknown)}")
    updates = {name: value for name, value in values.items() if value is not None}
    context = replace(_current.get(), **updates)
    _current.set(context)
    return context


def clear_request_context() -> None:
    _current.set(_EMPTY)
