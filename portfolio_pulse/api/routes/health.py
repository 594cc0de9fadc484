from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/ready")
def ready(request: Request):
    service = getattr(request.app.state, "portfolio_service", None)
    latest = service.latest if service else None
    return {
        "status": "ready" if service is not None else "not_ready",
        "source_configured": bool(service and service.orchestrator.source_configured),
        "last_snapshot_at": latest.generated_at.isoformat() if latest else None,
    }
