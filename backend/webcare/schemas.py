import enum

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

# Canonical remote-site models are pydantic models and serve as response schemas as-is
from webcare.services.wrm_types import (  # noqa: F401
    ActionResult,
    AvailableUpdates,
    MaintenanceState,
    OptimizationInfo,
    OptimizationResult,
    PluginInfo,
    RemoteSiteSnapshot,
    SiteStatus,
    ThemeInfo,
    UpdateReport,
    UserInfo,
)

# Auth

class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=8)
    first_name: Optional[str] = None
    last_name: Optional[str] = None

class LoginRequest(BaseModel):
    email: str
    password: str

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class UserResponse(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Clients

class ClientBase(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None
    status: str = "active"

class ClientCreate(ClientBase):
    pass

class ClientUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    status: Optional[str] = None

class ClientResponse(ClientBase):
    id: int
    user_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Websites

class WebsiteCreate(BaseModel):
    client_id: int
    name: str
    url: str
    wrm_api_key: Optional[str] = None

class WebsiteUpdate(BaseModel):
    client_id: Optional[int] = None
    name: Optional[str] = None
    url: Optional[str] = None
    wrm_api_key: Optional[str] = None

class WebsiteResponse(BaseModel):
    id: int
    client_id: int
    name: str
    url: str
    has_api_key: bool
    connection_status: str
    last_checked_at: Optional[datetime] = None
    wp_version: Optional[str] = None
    last_sync: Optional[datetime] = None
    last_update: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ApiKeyValidationResponse(BaseModel):
    valid: bool
    state: str
    code: Optional[str] = None
    message: Optional[str] = None
    connection_status: str

class ConnectionTestResponse(BaseModel):
    success: bool
    connection_status: str
    code: Optional[str] = None
    message: str
    wordpress_version: Optional[str] = None
    plugin_version: Optional[str] = None

class SyncTriggerResponse(BaseModel):
    message: str
    task_id: Optional[str] = None

class MaintenanceToggle(BaseModel):
    enabled: bool
    message: Optional[str] = None

class PluginAction(BaseModel):
    plugin: str

class PluginInstall(BaseModel):
    plugin: str  # wordpress.org slug
    activate: bool = True

class ThemeAction(BaseModel):
    theme: str

class OptimizationAction(str, enum.Enum):
    REVISIONS = "revisions"
    DATABASE = "database"
    ALL = "all"

# Updates

class UpdateRequestBody(BaseModel):
    wordpress: bool = False
    plugins: List[str] = []
    themes: List[str] = []
    maintenance_mode: bool = True
    bulk: bool = False

class UpdateLogResponse(BaseModel):
    id: int
    website_id: int
    user_id: Optional[int] = None
    update_type: str
    item_name: str
    item_slug: Optional[str] = None
    from_version: Optional[str] = None
    to_version: Optional[str] = None
    update_status: str
    error_message: Optional[str] = None
    duration_ms: Optional[int] = None
    automated_update: bool = False
    created_at: datetime

    class Config:
        from_attributes = True

class MaintenanceReportResponse(BaseModel):
    website_id: int
    website_name: str
    website_url: str
    period_start: datetime
    period_end: datetime
    total_updates: int
    successful_updates: int
    failed_updates: int
    pending_updates: int
    by_type: Dict[str, int]
    updates: List[UpdateLogResponse]
    current: Optional[Dict[str, Any]] = None

class DashboardStats(BaseModel):
    total_clients: int
    total_websites: int
    connected_websites: int
    error_websites: int
    unknown_websites: int
    websites_missing_api_key: int
    pending_updates: int
    updates_last_30_days: int
    failed_updates_last_30_days: int
