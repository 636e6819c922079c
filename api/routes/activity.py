# api/routes/activity.py
"""
GET /api/activity: últimas operaciones del usuario (más nueva primero).
"""

from fastapi import APIRouter, Depends, Query

from api.auth import get_auth_context
from api.deps import get_ledger
from api.domain.models import ActivityOut
from uploads.ledger import DEFAULT_ACTIVITY_LIMIT, ActivityLedger, activity_message
from uploads.models import AuthContext

router = APIRouter(prefix="/api", tags=["activity"])


@router.get("/activity", response_model=list[ActivityOut])
def recent_activity(
    limit: int = Query(DEFAULT_ACTIVITY_LIMIT, ge=1, le=100),
    ctx: AuthContext = Depends(get_auth_context),
    ledger: ActivityLedger = Depends(get_ledger),
):
    return [ActivityOut.from_record(r, activity_message(r)) for r in ledger.query(ctx.user_id, limit)]
