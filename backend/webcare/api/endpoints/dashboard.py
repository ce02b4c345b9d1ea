from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
import logging

from webcare.api import deps
from webcare.models.client import Client
from webcare.models.update_log import UpdateLog
from webcare.models.user import User
from webcare.models.website import ConnectionStatus, Website
from webcare.schemas import DashboardStats
from webcare.services.site_sync import load_snapshot

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/stats", response_model=DashboardStats)
def get_dashboard_stats(db: Session = Depends(deps.get_db), current_user: User = Depends(deps.get_current_user)):
    """Fleet overview for the current user"""
    total_clients = db.query(Client).filter(Client.user_id == current_user.id).count()
    websites = db.query(Website).join(Client).filter(Client.user_id == current_user.id).all()

    by_status = {status.value: 0 for status in ConnectionStatus}
    pending_updates = 0
    for website in websites:
        by_status[website.connection_status] = by_status.get(website.connection_status, 0) + 1
        snapshot = load_snapshot(website)
        if snapshot:
            pending_updates += snapshot.get("updates", {}).get("count", {}).get("total", 0)

    # Update activity (last 30 days)
    thirty_days_ago = datetime.utcnow() - timedelta(days=30)
    website_ids = [w.id for w in websites]
    recent = db.query(UpdateLog).filter(
        UpdateLog.website_id.in_(website_ids),
        UpdateLog.created_at >= thirty_days_ago
    )
    updates_30d = recent.count() if website_ids else 0
    failed_30d = recent.filter(UpdateLog.update_status == "failed").count() if website_ids else 0

    return DashboardStats(
        total_clients=total_clients,
        total_websites=len(websites),
        connected_websites=by_status[ConnectionStatus.CONNECTED.value],
        error_websites=by_status[ConnectionStatus.ERROR.value],
        unknown_websites=by_status[ConnectionStatus.UNKNOWN.value],
        websites_missing_api_key=sum(1 for w in websites if not w.has_api_key),
        pending_updates=pending_updates,
        updates_last_30_days=updates_30d,
        failed_updates_last_30_days=failed_30d,
    )
