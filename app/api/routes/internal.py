"""
Internal endpoints for other backend services (not exposed to clients).
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import get_balance_audit_service, require_admin_key
from app.schemas.tribute import RefundGenerationIn
from app.services.balance_audit.service import BalanceAuditService


router = APIRouter(prefix="/api/internal", tags=["internal"], dependencies=[Depends(require_admin_key)])


@router.post("/generations/{generation_id}/refund")
def refund_generation(
    generation_id: int,
    body: RefundGenerationIn,
    audit: BalanceAuditService = Depends(get_balance_audit_service),
) -> JSONResponse:
    """Return a failed generation's cost to its owner, at most once."""
    result = audit.safe_refund(generation_id, body.user_id, body.amount, body.metadata)
    status_code = 200 if result.success or result.already_refunded else 500
    if result.error == "User not found":
        status_code = 404
    return JSONResponse(status_code=status_code, content=result.to_dict())
