"""Metrics and health check endpoints."""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from claim_controller.api.dependencies import get_db
from claim_controller.core.metrics import get_metrics
import time

router = APIRouter()


@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus exposition format.
    """
    metrics_output, content_type = get_metrics()
    return Response(content=metrics_output, media_type=content_type)


@router.get("/healthz")
async def healthz():
    """
    Liveness probe.

    Returns 200 if the process is running.
    """
    return {"status": "healthy", "timestamp": int(time.time())}


@router.get("/readyz")
async def readyz(db=Depends(get_db)):
    """
    Readiness probe.

    Returns 200 if DynamoDB is reachable, 503 otherwise.
    """
    try:
        db.table.scan(Limit=1)
        return {
            "status": "ready",
            "timestamp": int(time.time()),
            "checks": {"dynamodb": "ok"},
        }
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "timestamp": int(time.time()),
                "checks": {"dynamodb": f"error: {str(e)}"},
            },
        )
