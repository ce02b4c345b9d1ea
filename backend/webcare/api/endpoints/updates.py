import logging
from datetime import datetime, timedelta
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from webcare.api import deps
from webcare.core.config import settings
from webcare.core.redis import UpdateAlreadyRunning, get_redis, website_update_lock
from webcare.models.update_log import UpdateLog
from webcare.models.user import User
from webcare.models.website import ConnectionStatus, Website
from webcare.schemas import MaintenanceReportResponse, PluginAction, ThemeAction, UpdateLogResponse, UpdateRequestBody
from webcare.services.site_sync import load_snapshot, set_connection_status
from webcare.services.updates import UpdateOrchestrator
from webcare.services.wrm_errors import CONNECTION_FAILURES
from webcare.services.wrm_types import ItemOutcome, ItemStatus, UpdateReport, UpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter()

LOG_STATUS = {
    ItemStatus.SUCCESS: "success",
    ItemStatus.FAILED: "failed",
    ItemStatus.IN_PROGRESS: "pending",
}
CONNECTION_FAILURE_CODES = {cls.code for cls in CONNECTION_FAILURES}


def report_connection_status(report: UpdateReport) -> ConnectionStatus:
    outcomes = report.outcomes()
    # any item the site answered for proves the connection
    if any(o.success or o.error_code == "UPDATE_FAILED" for o in outcomes):
        return ConnectionStatus.CONNECTED
    if any(o.error_code in CONNECTION_FAILURE_CODES for o in outcomes):
        return ConnectionStatus.ERROR
    return ConnectionStatus.UNKNOWN


def write_update_logs(db: Session, website: Website, user: User, report: UpdateReport) -> List[UpdateLog]:
    def log_for(kind: str, outcome: ItemOutcome) -> UpdateLog:
        return UpdateLog(
            website_id=website.id,
            user_id=user.id if user else None,
            update_type=kind,
            item_name=outcome.name or outcome.target,
            item_slug=outcome.target,
            from_version=outcome.from_version,
            to_version=outcome.to_version,
            update_status=LOG_STATUS[outcome.status],
            error_message=None if outcome.success else outcome.message,
            update_data={"message": outcome.message, "error_code": outcome.error_code},
            duration_ms=outcome.duration_ms,
            automated_update=False,
        )

    logs = []
    if report.wordpress:
        logs.append(log_for("wordpress", report.wordpress))
    logs.extend(log_for("plugin", o) for o in report.plugins)
    logs.extend(log_for("theme", o) for o in report.themes)
    db.add_all(logs)
    return logs


async def run_updates(
    db: Session,
    website: Website,
    user: User,
    factory: deps.ClientFactory,
    redis_conn,
    request: UpdateRequest,
    use_maintenance: bool,
    bulk: bool = False,
) -> UpdateReport:
    client = deps.build_remote_client(db, website, factory)
    orchestrator = UpdateOrchestrator(
        client,
        use_maintenance=use_maintenance,
        bulk=bulk,
        verify_attempts=settings.WRM_VERIFY_ATTEMPTS,
        verify_wait=settings.WRM_VERIFY_WAIT,
        maintenance_message=settings.MAINTENANCE_MESSAGE,
    )
    try:
        with website_update_lock(redis_conn, website.id):
            report = await orchestrator.run(request)
    except UpdateAlreadyRunning as e:
        logger.warning(str(e))
        raise HTTPException(status_code=409, detail={"code": "UPDATE_IN_PROGRESS", "message": str(e)})

    if request.is_empty:
        return report

    write_update_logs(db, website, user, report)
    if any(o.success for o in report.outcomes()):
        website.last_update = datetime.utcnow()
    if report.wordpress and report.wordpress.success and report.wordpress.to_version:
        website.wp_version = report.wordpress.to_version
    set_connection_status(db, website, report_connection_status(report))
    logger.info(f"Updates on website {website.id}: success={report.success} partial={report.partial_failure}")
    return report


@router.post("/{website_id}/updates", response_model=UpdateReport)
async def perform_updates(
    body: UpdateRequestBody,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
    redis_conn=Depends(get_redis),
):
    request = UpdateRequest(wordpress=body.wordpress, plugins=body.plugins, themes=body.themes)
    return await run_updates(
        db, website, current_user, factory, redis_conn, request, body.maintenance_mode, bulk=body.bulk
    )


@router.post("/{website_id}/update-plugin", response_model=UpdateReport)
async def update_plugin(
    action: PluginAction,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
    redis_conn=Depends(get_redis),
):
    request = UpdateRequest(plugins=[action.plugin])
    return await run_updates(db, website, current_user, factory, redis_conn, request, use_maintenance=False)


@router.post("/{website_id}/update-theme", response_model=UpdateReport)
async def update_theme(
    action: ThemeAction,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
    redis_conn=Depends(get_redis),
):
    request = UpdateRequest(themes=[action.theme])
    return await run_updates(db, website, current_user, factory, redis_conn, request, use_maintenance=False)


@router.post("/{website_id}/update-wordpress", response_model=UpdateReport)
async def update_wordpress(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
    redis_conn=Depends(get_redis),
):
    request = UpdateRequest(wordpress=True)
    return await run_updates(db, website, current_user, factory, redis_conn, request, use_maintenance=False)


@router.get("/{website_id}/update-logs", response_model=List[UpdateLogResponse])
def get_update_logs(
    limit: int = Query(50, ge=1, le=500),
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
):
    return (
        db.query(UpdateLog)
        .filter(UpdateLog.website_id == website.id)
        .order_by(UpdateLog.created_at.desc(), UpdateLog.id.desc())
        .limit(limit)
        .all()
    )


@router.get("/{website_id}/maintenance-report", response_model=MaintenanceReportResponse)
def get_maintenance_report(
    days: int = Query(30, ge=1, le=365),
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
):
    period_end = datetime.utcnow()
    period_start = period_end - timedelta(days=days)
    logs = (
        db.query(UpdateLog)
        .filter(UpdateLog.website_id == website.id, UpdateLog.created_at >= period_start)
        .order_by(UpdateLog.created_at.desc(), UpdateLog.id.desc())
        .all()
    )
    by_type = {"wordpress": 0, "plugin": 0, "theme": 0}
    for log in logs:
        by_type[log.update_type] = by_type.get(log.update_type, 0) + 1

    current = None
    snapshot = load_snapshot(website)
    if snapshot:
        status = snapshot.get("status", {})
        current = {
            "wordpress_version": status.get("wordpress_version"),
            "php_version": status.get("php_version"),
            "ssl_enabled": status.get("ssl_enabled"),
            "plugins_count": status.get("plugins_count"),
            "pending_updates": snapshot.get("updates", {}).get("count", {}).get("total", 0),
            "fetched_at": snapshot.get("fetched_at"),
        }

    return MaintenanceReportResponse(
        website_id=website.id,
        website_name=website.name,
        website_url=website.url,
        period_start=period_start,
        period_end=period_end,
        total_updates=len(logs),
        successful_updates=sum(1 for log in logs if log.update_status == "success"),
        failed_updates=sum(1 for log in logs if log.update_status == "failed"),
        pending_updates=sum(1 for log in logs if log.update_status == "pending"),
        by_type=by_type,
        updates=[UpdateLogResponse.model_validate(log) for log in logs],
        current=current,
    )
