from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from paysettle.core.config import settings
from paysettle.routers import index_queue, refunds, schedules, settlement_runs, settlements

OPENAPI_TAGS = [
    {"name": "Refunds", "description": "Full, partial and failed-payment refunds."},
    {"name": "Settlements", "description": "Settlement approval workflow."},
    {"name": "Schedules", "description": "Manage settlement batch schedules."},
    {"name": "Settlement Runs", "description": "Trigger settlement batches by hand."},
    {"name": "Index Queue", "description": "Inspect the search index retry queue."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Payment settlement API. Refund captured payments, approve settlements "
        "and manage the settlement batch schedules."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(refunds.router, prefix="/v1/refunds", tags=["Refunds"])
app.include_router(settlements.router, prefix="/v1/settlements", tags=["Settlements"])
app.include_router(schedules.router, prefix="/v1/admin/schedules", tags=["Schedules"])
app.include_router(
    settlement_runs.router, prefix="/v1/admin/settlement-runs", tags=["Settlement Runs"]
)
app.include_router(index_queue.router, prefix="/v1/admin/index-queue", tags=["Index Queue"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "status": "running",
    }


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
