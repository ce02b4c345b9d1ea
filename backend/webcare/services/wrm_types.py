"""Canonical shapes produced by the WP Remote Manager client."""
import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field


class PluginInfo(BaseModel):
    plugin: str  # plugin file path, e.g. "contact-form-7/wp-contact-form-7.php"
    name: str
    version: Optional[str] = None
    active: bool = False
    network_active: bool = False
    update_available: bool = False
    new_version: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    auto_update: bool = False

    @computed_field
    @property
    def slug(self) -> str:
        return self.plugin.split("/", 1)[0]


class ThemeInfo(BaseModel):
    stylesheet: str
    name: str
    version: Optional[str] = None
    active: bool = False
    update_available: bool = False
    new_version: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    template: Optional[str] = None
    parent: Optional[str] = None
    screenshot: Optional[str] = None


class UserInfo(BaseModel):
    id: int
    username: str
    email: str = ""
    display_name: str = ""
    first_name: str = ""
    last_name: str = ""
    roles: List[str] = []
    registered_date: Optional[str] = None
    last_login: Optional[str] = None
    post_count: int = 0


class SiteStatus(BaseModel):
    wordpress_version: Optional[str] = None
    php_version: Optional[str] = None
    mysql_version: Optional[str] = None
    memory_limit: Optional[str] = None
    max_execution_time: Optional[str] = None
    ssl_enabled: bool = False
    plugins_count: int = 0
    active_plugins_count: int = 0
    themes_count: int = 0
    users_count: int = 0
    maintenance_mode: bool = False
    plugin_version: Optional[str] = None
    theme: Optional[Dict[str, Any]] = None
    site_info: Dict[str, Any] = {}


class UpdateItem(BaseModel):
    type: str  # "plugin" or "theme"
    identifier: str  # plugin file path or theme stylesheet, as accepted by the update endpoints
    name: str
    current_version: Optional[str] = None
    new_version: Optional[str] = None
    package_url: str = ""
    auto_update: bool = False


class CoreUpdate(BaseModel):
    update_available: bool = False
    current_version: Optional[str] = None
    new_version: Optional[str] = None
    package: Optional[str] = None


class AvailableUpdates(BaseModel):
    wordpress: CoreUpdate = Field(default_factory=CoreUpdate)
    plugins: List[UpdateItem] = []
    themes: List[UpdateItem] = []

    @computed_field
    @property
    def count(self) -> Dict[str, int]:
        core = 1 if self.wordpress.update_available else 0
        return {
            "total": core + len(self.plugins) + len(self.themes),
            "core": core,
            "plugins": len(self.plugins),
            "themes": len(self.themes),
        }


class MaintenanceState(BaseModel):
    enabled: bool
    message: Optional[str] = None


class KeyState(str, enum.Enum):
    VALID = "valid"
    INVALID_KEY = "invalid_key"
    PLUGIN_MISSING = "plugin_missing"
    UNREACHABLE = "unreachable"
    UNEXPECTED_RESPONSE = "unexpected_response"
    ERROR = "error"


class ApiKeyValidation(BaseModel):
    valid: bool
    state: KeyState
    code: Optional[str] = None
    message: Optional[str] = None


class ItemStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"  # timed out, may still be completing remotely


class ItemOutcome(BaseModel):
    target: str
    status: ItemStatus
    message: str = ""
    name: Optional[str] = None
    from_version: Optional[str] = None
    to_version: Optional[str] = None
    error_code: Optional[str] = None
    raw: Optional[Any] = Field(default=None, exclude=True)
    duration_ms: Optional[int] = Field(default=None, exclude=True)

    @computed_field
    @property
    def success(self) -> bool:
        return self.status == ItemStatus.SUCCESS


class UpdateRequest(BaseModel):
    wordpress: bool = False
    plugins: List[str] = []
    themes: List[str] = []

    @property
    def is_empty(self) -> bool:
        return not (self.wordpress or self.plugins or self.themes)


class MaintenanceBracket(BaseModel):
    requested: bool = False
    enabled: bool = False
    disabled: bool = False


class UpdateReport(BaseModel):
    wordpress: Optional[ItemOutcome] = None
    plugins: List[ItemOutcome] = []
    themes: List[ItemOutcome] = []
    maintenance: MaintenanceBracket = Field(default_factory=MaintenanceBracket)
    warnings: List[str] = []

    def outcomes(self) -> List[ItemOutcome]:
        items = [self.wordpress] if self.wordpress else []
        return items + self.plugins + self.themes

    @computed_field
    @property
    def success(self) -> bool:
        return all(o.success for o in self.outcomes())

    @computed_field
    @property
    def partial_failure(self) -> bool:
        outcomes = self.outcomes()
        return any(o.success for o in outcomes) and not all(o.success for o in outcomes)

    @computed_field
    @property
    def in_progress(self) -> bool:
        return any(o.status == ItemStatus.IN_PROGRESS for o in self.outcomes())

    @computed_field
    @property
    def failed(self) -> Dict[str, Any]:
        """Items worth retrying, grouped the way an UpdateRequest takes them."""
        return {
            "wordpress": bool(self.wordpress and self.wordpress.status == ItemStatus.FAILED),
            "plugins": [o.target for o in self.plugins if o.status == ItemStatus.FAILED],
            "themes": [o.target for o in self.themes if o.status == ItemStatus.FAILED],
        }


class RemoteSiteSnapshot(BaseModel):
    status: SiteStatus
    updates: AvailableUpdates
    plugins: List[PluginInfo]
    themes: List[ThemeInfo]
    users: List[UserInfo]
    fetched_at: datetime = Field(default_factory=datetime.utcnow)


class OptimizationInfo(BaseModel):
    post_revisions: int = 0
    revisions_size: Optional[str] = None
    database_size: Optional[str] = None
    database_tables: int = 0
    database_overhead: Optional[str] = None
    trashed_posts: int = 0
    trashed_comments: int = 0
    spam_comments: int = 0
    last_optimized: Optional[str] = None


class OptimizationResult(BaseModel):
    success: bool
    action: str  # "revisions", "database" or "all"
    message: str = ""
    items_removed: int = 0
    tables_optimized: int = 0
    size_freed: Optional[str] = None


class ActionResult(BaseModel):
    """Outcome of a plugin or theme management call."""
    success: bool
    message: str = ""
    data: Optional[Any] = None
