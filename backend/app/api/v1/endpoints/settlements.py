"""
Settlement API Endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.schemas.ledger import SettleRequest, SettleResponse
from backend.app.core.guards import require_role, actor_of, WRITE_ROLES
from backend.app.domain.ledger.settlement import SettlementProcessor

router = APIRouter(prefix="/ledger", tags=["Ledger - Settlement"])


@router.post("/settle", response_model=SettleResponse)
async def settle_payment(
    payload: SettleRequest,
    current_user: dict = Depends(require_role(WRITE_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """
    Apply a payment to a Sell entry of the caller's company.

    Payments above the outstanding amount are capped (excess_amount in the
    response) or rejected, depending on the overpayment policy.
    """
    result = await SettlementProcessor().settle(
        db,
        company_id=int(current_user["company_id"]),
        entry_id=payload.entry_id,
        amount=payload.amount,
        payment_method=payload.payment_method,
        actor_id=actor_of(current_user),
    )
    return SettleResponse.from_result(result)
