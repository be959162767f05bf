from __future__ import annotations

from fastapi import APIRouter

from app.core.metrics import request_metrics
from app.services.event_bus import event_bus

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def endpoint_metrics():
    return {
        "endpoints": request_metrics.snapshot(),
        "event_handler_failures": event_bus.failure_counts(),
    }


@router.get("/merchants")
def merchant_metrics():
    return {"merchants": request_metrics.snapshot_per_merchant()}
