from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/market")
def market_health(request: Request):
    """Order book feed connectivity."""
    runtime = getattr(request.app.state, "simulation_runtime", None)
    if runtime is None:
        return {"enabled": False, "connected": False, "ts": None}
    return runtime.get_status()
