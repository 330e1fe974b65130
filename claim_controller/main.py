"""FastAPI application entry point."""

import uuid
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from claim_controller.core.config import settings
from claim_controller.api.routes import router
from claim_controller.api.metrics_routes import router as metrics_router
from claim_controller.middleware.logging import LoggingMiddleware
from claim_controller import __version__


app = FastAPI(
    title="Sandbox Claim Controller",
    description="""
## Sandbox Claim Controller

Binds pre-warmed sandboxes from a pool to claims and drives each claim
through `Claiming` to `Completed`.

### Endpoints

* **Admission**: `POST /v1/validate-claim` rejects changes to `spec.replicas`
* **Claims**: `GET /v1/claims/{namespace}/{name}` returns a claim and its status
* **Observability**: `/healthz`, `/readyz`, `/metrics`

Reconciliation itself runs in the worker process (`python -m claim_controller.jobs.worker`).
    """,
    version=__version__,
    docs_url=f"{settings.api_base_path}/docs",
    redoc_url=f"{settings.api_base_path}/redoc",
    openapi_url=f"{settings.api_base_path}/openapi.json",
    openapi_tags=[
        {
            "name": "Claims",
            "description": "Claim admission and status",
        },
        {
            "name": "Observability",
            "description": "Health checks and metrics",
        },
    ],
)

app.add_middleware(LoggingMiddleware)


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": exc.errors(),
                "request_id": getattr(request.state, "request_id", str(uuid.uuid4())),
            }
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors."""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "request_id": getattr(request.state, "request_id", str(uuid.uuid4())),
            }
        },
    )


# Include routers
app.include_router(router, prefix=settings.api_base_path, tags=["Claims"])
app.include_router(metrics_router, tags=["Observability"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Sandbox Claim Controller",
        "version": __version__,
        "docs": f"{settings.api_base_path}/docs",
    }


@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    print(f"🚀 Sandbox Claim Controller API v{__version__} starting...")
    print(f"📍 API base path: {settings.api_base_path}")
    print(f"🗄️  DynamoDB table: {settings.ddb_table_name}")
    if settings.ddb_endpoint_url:
        print(f"🔧 Using local DynamoDB: {settings.ddb_endpoint_url}")
    print(f"🛡️  Admission checks: {'enabled' if settings.admission_enabled else 'disabled'}")


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    print("👋 Sandbox Claim Controller API shutting down...")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "claim_controller.main:app",
        host="0.0.0.0",
        port=8080,
        reload=True,
        log_level=settings.log_level.lower(),
    )
