"""
Dashboard router - Sales, pending balances and top products/clients
"""

from fastapi import APIRouter, Depends
from firebase_admin import firestore

from ..services.dashboard import get_dashboard_metrics
from ..shared import config
from ..shared.auth import get_current_user, get_user_id

router = APIRouter()


@router.get("/metrics")
async def dashboard_metrics(current_user: dict = Depends(get_current_user)):
    user_id = get_user_id(current_user)
    metrics = await get_dashboard_metrics(firestore, user_id, timeout=config.store_timeout())
    return metrics.to_dict()
