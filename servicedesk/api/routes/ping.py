from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse

from servicedesk.metrics import PrometheusExporter, metrics_registry

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready", summary="Database readiness probe")
async def ready(request: Request) -> dict[str, str]:
    tester = getattr(request.app.state, "postgres_tester", None)
    if tester is None:
        raise HTTPException(status_code=503, detail="Database is not configured")
    try:
        await tester.test_connection()
    except Exception as exc:
        raise HTTPException(status_code=503, detail="Database is unreachable") from exc
    return {"status": "ok", "database": "ok"}


@router.get("/metrics", response_class=PlainTextResponse, summary="Prometheus metrics")
async def metrics() -> str:
    return PrometheusExporter(metrics_registry).build_payload()
