from fastapi import APIRouter, Depends, Response

from app.api.deps import get_row_store
from app.db.row_store import RowStore


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness probe - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(response: Response, store: RowStore = Depends(get_row_store)) -> dict:
    """Readiness probe - returns 503 if the row store is unreachable."""
    if store.ping():
        return {"status": "ready"}
    response.status_code = 503
    return {"status": "not_ready", "error": "row store unreachable"}
