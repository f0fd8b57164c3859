"""Credit balance and ledger history for the caller's team."""

from fastapi import APIRouter, Depends, Query, Request

from brandforge.core.auth import Identity, get_current_identity
from brandforge.core.logging import get_request_id
from brandforge.features.entitlements.service import (
    MAX_HISTORY_LIMIT,
    get_balance_summary,
    get_credit_history,
)

router = APIRouter(prefix="/v1/credits", tags=["credits"])


@router.get("")
def credits_summary(request: Request, identity: Identity = Depends(get_current_identity)):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    summary = get_balance_summary(identity.team_id)
    summary["request_id"] = rid
    return summary


@router.get("/history")
def credits_history(
    request: Request,
    limit: int = Query(50, ge=1, le=MAX_HISTORY_LIMIT),
    identity: Identity = Depends(get_current_identity),
):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    entries = get_credit_history(identity.team_id, limit=limit)
    return {
        "entries": [
            {
                "id": e.id,
                "userId": e.user_id,
                "actionType": e.action_type,
                "amountDebited": e.amount_debited,
                "balanceBefore": e.balance_before,
                "balanceAfter": e.balance_after,
                "description": e.description,
                "metadata": e.metadata,
                "createdAt": e.created_at.isoformat(),
            }
            for e in entries
        ],
        "count": len(entries),
        "request_id": rid,
    }
