import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from webcare.api import deps
from webcare.models.client import Client
from webcare.models.user import User
from webcare.models.website import ConnectionStatus, Website
from webcare.schemas import (
    ActionResult,
    ApiKeyValidationResponse,
    AvailableUpdates,
    ConnectionTestResponse,
    MaintenanceState,
    MaintenanceToggle,
    OptimizationAction,
    OptimizationInfo,
    OptimizationResult,
    PluginAction,
    PluginInfo,
    PluginInstall,
    RemoteSiteSnapshot,
    SiteStatus,
    SyncTriggerResponse,
    ThemeAction,
    ThemeInfo,
    UserInfo,
    WebsiteCreate,
    WebsiteResponse,
    WebsiteUpdate,
)
from webcare.services.site_sync import record_connection, set_connection_status, sync_website
from webcare.services.wp_remote_manager import WPRemoteManagerClient
from webcare.services.wrm_errors import RemoteManagerError
from webcare.services.wrm_types import KeyState

logger = logging.getLogger(__name__)

router = APIRouter()

KEY_STATE_CONNECTION = {
    KeyState.VALID: ConnectionStatus.CONNECTED,
    KeyState.INVALID_KEY: ConnectionStatus.ERROR,
    KeyState.PLUGIN_MISSING: ConnectionStatus.ERROR,
    KeyState.UNREACHABLE: ConnectionStatus.ERROR,
    KeyState.UNEXPECTED_RESPONSE: ConnectionStatus.UNKNOWN,
    KeyState.ERROR: ConnectionStatus.UNKNOWN,
}


async def remote_call(
    db: Session,
    website: Website,
    factory: deps.ClientFactory,
    operation: Callable[[WPRemoteManagerClient], Awaitable[Any]],
) -> Any:
    """Run one remote operation and record its outcome on the website."""
    client = deps.build_remote_client(db, website, factory)
    try:
        result = await operation(client)
    except RemoteManagerError as e:
        logger.warning(f"Remote call for website {website.id} failed: {e.code} {e.message}")
        record_connection(db, website, e)
        raise deps.remote_error(e)
    record_connection(db, website)
    return result


# CRUD

@router.get("/", response_model=List[WebsiteResponse])
def list_websites(
    client_id: Optional[int] = None,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
):
    query = db.query(Website).join(Client).filter(Client.user_id == current_user.id)
    if client_id is not None:
        query = query.filter(Website.client_id == client_id)
    return query.order_by(Website.name).all()


@router.post("/", response_model=WebsiteResponse, status_code=201)
def create_website(
    website_in: WebsiteCreate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
):
    deps.get_owned_client(website_in.client_id, db, current_user)
    website = Website(
        client_id=website_in.client_id,
        name=website_in.name,
        url=website_in.url.strip().rstrip("/"),
        wrm_api_key=(website_in.wrm_api_key or "").strip() or None,
        connection_status=ConnectionStatus.UNKNOWN.value,
    )
    db.add(website)
    db.commit()
    db.refresh(website)
    return website


@router.post("/auto-sync", response_model=SyncTriggerResponse)
def trigger_auto_sync(current_user: User = Depends(deps.get_current_user)):
    from webcare.tasks.sync import sync_all_websites_task
    task = sync_all_websites_task.delay()
    return {"message": "Sync queued for all websites", "task_id": str(task.id)}


@router.get("/{website_id}", response_model=WebsiteResponse)
def get_website(website: Website = Depends(deps.get_owned_website)):
    return website


@router.put("/{website_id}", response_model=WebsiteResponse)
def update_website(
    website_in: WebsiteUpdate,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
):
    update_data = website_in.model_dump(exclude_unset=True)
    if "client_id" in update_data:
        deps.get_owned_client(update_data["client_id"], db, current_user)
    if "url" in update_data and update_data["url"]:
        update_data["url"] = update_data["url"].strip().rstrip("/")
    if "wrm_api_key" in update_data:
        update_data["wrm_api_key"] = (update_data["wrm_api_key"] or "").strip() or None
        # a new key has not been checked yet
        update_data["connection_status"] = ConnectionStatus.UNKNOWN.value
    for field, value in update_data.items():
        setattr(website, field, value)
    db.commit()
    db.refresh(website)
    return website


@router.delete("/{website_id}")
def delete_website(website: Website = Depends(deps.get_owned_website), db: Session = Depends(deps.get_db)):
    db.delete(website)
    db.commit()
    return {"message": "Website deleted"}


# Connection

@router.post("/{website_id}/validate-api-key", response_model=ApiKeyValidationResponse)
async def validate_api_key(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    client = deps.build_remote_client(db, website, factory)
    result = await client.validate_api_key()
    status = KEY_STATE_CONNECTION[result.state]
    set_connection_status(db, website, status)
    return ApiKeyValidationResponse(
        valid=result.valid,
        state=result.state.value,
        code=result.code,
        message=result.message,
        connection_status=status.value,
    )


@router.post("/{website_id}/test-connection", response_model=ConnectionTestResponse)
async def test_connection(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    try:
        status = await remote_call(db, website, factory, lambda c: c.fetch_status())
    except HTTPException as e:
        if not isinstance(e.detail, dict):
            raise
        return ConnectionTestResponse(
            success=False,
            connection_status=website.connection_status,
            code=e.detail["code"],
            message=e.detail["message"],
        )
    return ConnectionTestResponse(
        success=True,
        connection_status=website.connection_status,
        message=f"Connected to WordPress {status.wordpress_version or '(unknown version)'}",
        wordpress_version=status.wordpress_version,
        plugin_version=status.plugin_version,
    )


# Remote reads

@router.get("/{website_id}/wrm/status", response_model=SiteStatus)
async def get_remote_status(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    status = await remote_call(db, website, factory, lambda c: c.fetch_status())
    if status.wordpress_version and status.wordpress_version != website.wp_version:
        website.wp_version = status.wordpress_version
        db.commit()
    return status


@router.get("/{website_id}/wrm/health", response_model=Dict[str, Any])
async def get_remote_health(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.fetch_health())


@router.get("/{website_id}/wrm/updates", response_model=AvailableUpdates)
async def get_remote_updates(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.fetch_updates())


@router.get("/{website_id}/wrm/plugins", response_model=List[PluginInfo])
async def get_remote_plugins(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.fetch_plugins())


@router.get("/{website_id}/wrm/themes", response_model=List[ThemeInfo])
async def get_remote_themes(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.fetch_themes())


@router.get("/{website_id}/wrm/users", response_model=List[UserInfo])
async def get_remote_users(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.fetch_users())


@router.get("/{website_id}/wrm/maintenance", response_model=MaintenanceState)
async def get_maintenance_mode(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.get_maintenance_mode())


@router.get("/{website_id}/optimization", response_model=OptimizationInfo)
async def get_optimization_info(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.fetch_optimization_info())


# Remote mutations

@router.post("/{website_id}/wrm/maintenance", response_model=MaintenanceState)
async def set_maintenance_mode(
    toggle: MaintenanceToggle,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.set_maintenance_mode(toggle.enabled, toggle.message))


@router.post("/{website_id}/plugins/activate", response_model=ActionResult)
async def activate_plugin(
    action: PluginAction,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.activate_plugin(action.plugin))


@router.post("/{website_id}/plugins/deactivate", response_model=ActionResult)
async def deactivate_plugin(
    action: PluginAction,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.deactivate_plugin(action.plugin))


@router.post("/{website_id}/plugins/install", response_model=ActionResult)
async def install_plugin(
    install: PluginInstall,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.install_plugin(install.plugin, install.activate))


@router.post("/{website_id}/themes/activate", response_model=ActionResult)
async def activate_theme(
    action: ThemeAction,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    return await remote_call(db, website, factory, lambda c: c.activate_theme(action.theme))


@router.delete("/{website_id}/themes/{stylesheet}", response_model=ActionResult)
async def delete_theme(
    stylesheet: str,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    themes = await remote_call(db, website, factory, lambda c: c.fetch_themes())
    theme = next((t for t in themes if stylesheet in (t.stylesheet, t.name)), None)
    if theme and theme.active:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "ACTIVE_THEME",
                "message": "Cannot delete the currently active theme. Please activate a different theme first.",
            },
        )
    target = theme.stylesheet if theme else stylesheet
    return await remote_call(db, website, factory, lambda c: c.delete_theme(target))


@router.post("/{website_id}/optimization/{action}", response_model=OptimizationResult)
async def run_optimization(
    action: OptimizationAction,
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    operations = {
        OptimizationAction.REVISIONS: lambda c: c.optimize_post_revisions(),
        OptimizationAction.DATABASE: lambda c: c.optimize_database(),
        OptimizationAction.ALL: lambda c: c.optimize_all(),
    }
    result = await remote_call(db, website, factory, operations[action])
    logger.info(f"Optimization {action.value} on website {website.id}: success={result.success}")
    return result


@router.post("/{website_id}/sync", response_model=RemoteSiteSnapshot)
async def sync_now(
    website: Website = Depends(deps.get_owned_website),
    db: Session = Depends(deps.get_db),
    factory: deps.ClientFactory = Depends(deps.get_client_factory),
):
    client = deps.build_remote_client(db, website, factory)
    try:
        return await sync_website(db, website, client)
    except RemoteManagerError as e:
        raise deps.remote_error(e)
