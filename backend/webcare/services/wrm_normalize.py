"""
Normalization of WP Remote Manager responses.

Different generations of the companion plugin name the same fields
differently (``plugin`` vs ``plugin_file`` vs ``path``, ``stylesheet`` vs
``slug``, ``user_login`` vs ``username`` ...) and wrap lists differently
(bare arrays, ``{"success": true, "plugins": [...]}``, dicts keyed by plugin
path). Everything here is a pure ``raw -> canonical`` mapping; supporting a
new plugin variant means adding a key to one of the lookups below.
"""
from typing import Any, Dict, List, Optional, Tuple

from webcare.services.wrm_types import (
    ActionResult,
    AvailableUpdates,
    CoreUpdate,
    MaintenanceState,
    OptimizationInfo,
    OptimizationResult,
    PluginInfo,
    SiteStatus,
    ThemeInfo,
    UpdateItem,
    UserInfo,
)

PLUGIN_ID_KEYS = ("plugin_file", "plugin", "path", "file", "_key")
THEME_ID_KEYS = ("stylesheet", "slug", "theme", "_key")
CURRENT_VERSION_KEYS = ("current_version", "installed_version", "old_version")
NEW_VERSION_KEYS = ("new_version", "update_version", "latest_version")
SUCCESS_STATUSES = {"completed", "complete", "success", "updated", "ok"}
TRUTHY = {"1", "true", "yes", "on", "active", "enabled"}


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY
    return bool(value)


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def extract_list(payload: Any, key: str) -> List[Dict[str, Any]]:
    """Pull a list of objects out of any of the wrappings the plugin uses.

    A missing or null list is an empty list, never an error.
    """
    items = payload
    if isinstance(payload, dict):
        items = payload.get(key)
        if items is None and isinstance(payload.get("data"), (list, dict)):
            return extract_list(payload["data"], key)
    if isinstance(items, dict):
        # keyed by plugin path / theme slug
        return [dict(value, _key=name) for name, value in items.items() if isinstance(value, dict)]
    if isinstance(items, list):
        return [item for item in items if isinstance(item, dict)]
    return []


def normalize_plugin(raw: Dict[str, Any]) -> PluginInfo:
    name = _first(raw, "name", "title", "Name")
    plugin = _first(raw, *PLUGIN_ID_KEYS) or _first(raw, "slug") or name or "unknown-plugin"
    version = _as_str(_first(raw, "version", "current_version", "Version"))
    new_version = _as_str(_first(raw, *NEW_VERSION_KEYS))
    update_available = _as_bool(raw.get("update_available")) or bool(new_version and new_version != version)
    return PluginInfo(
        plugin=str(plugin),
        name=str(name or plugin),
        version=version,
        active=_as_bool(raw.get("active")) or raw.get("status") == "active",
        network_active=_as_bool(raw.get("network_active") or raw.get("network")),
        update_available=update_available,
        new_version=new_version if update_available else None,
        author=_as_str(_first(raw, "author", "Author")),
        description=_as_str(_first(raw, "description", "Description")),
        auto_update=_as_bool(raw.get("auto_update")),
    )


def normalize_theme(raw: Dict[str, Any]) -> ThemeInfo:
    name = _first(raw, "name", "title", "Name")
    stylesheet = _first(raw, *THEME_ID_KEYS) or name or "unknown-theme"
    version = _as_str(_first(raw, "version", "current_version", "Version"))
    new_version = _as_str(_first(raw, *NEW_VERSION_KEYS))
    update_available = _as_bool(raw.get("update_available")) or bool(new_version and new_version != version)
    template = _first(raw, "template")
    parent = _first(raw, "parent")
    if not parent and template and template != stylesheet:
        parent = template
    return ThemeInfo(
        stylesheet=str(stylesheet),
        name=str(name or stylesheet),
        version=version,
        active=_as_bool(raw.get("active")) or raw.get("status") == "active",
        update_available=update_available,
        new_version=new_version if update_available else None,
        author=_as_str(_first(raw, "author", "Author")),
        description=_as_str(_first(raw, "description", "Description")),
        template=_as_str(template) or str(stylesheet),
        parent=_as_str(parent),
        screenshot=_as_str(_first(raw, "screenshot")),
    )


def normalize_user(raw: Dict[str, Any]) -> UserInfo:
    user_id = _as_int(_first(raw, "id", "ID", "user_id"))
    username = _first(raw, "username", "user_login", "login") or f"user{user_id}"
    roles = raw.get("roles")
    if not isinstance(roles, list):
        role = raw.get("role")
        roles = [role] if role else []
    if isinstance(raw.get("roles"), dict):
        roles = list(raw["roles"].values())
    return UserInfo(
        id=user_id,
        username=str(username),
        email=_as_str(_first(raw, "email", "user_email")) or "",
        display_name=_as_str(_first(raw, "display_name", "name")) or str(username),
        first_name=_as_str(raw.get("first_name")) or "",
        last_name=_as_str(raw.get("last_name")) or "",
        roles=[str(r) for r in roles],
        registered_date=_as_str(_first(raw, "registered_date", "user_registered", "registered")),
        last_login=_as_str(_first(raw, "last_login")),
        post_count=_as_int(_first(raw, "post_count", "posts_count")),
    )


def normalize_update_item(raw: Dict[str, Any], item_type: str) -> UpdateItem:
    id_keys = PLUGIN_ID_KEYS if item_type == "plugin" else THEME_ID_KEYS
    name = _first(raw, "name", "title")
    identifier = _first(raw, *id_keys) or _first(raw, "slug") or name or "unknown"
    return UpdateItem(
        type=item_type,
        identifier=str(identifier),
        name=str(name or identifier),
        current_version=_as_str(_first(raw, *CURRENT_VERSION_KEYS)),
        new_version=_as_str(_first(raw, *NEW_VERSION_KEYS, "version")),
        package_url=_as_str(raw.get("package_url") or raw.get("package")) or "",
        auto_update=_as_bool(raw.get("auto_update")),
    )


def normalize_core_update(raw: Any) -> CoreUpdate:
    """Core updates come either as a status dict or as a list of update offers."""
    if isinstance(raw, list):
        offers = [o for o in raw if isinstance(o, dict) and o.get("response") != "latest"]
        if not offers:
            return CoreUpdate(update_available=False)
        raw = dict(offers[0])
        raw.setdefault("update_available", True)
    if not isinstance(raw, dict):
        return CoreUpdate(update_available=False)
    current = _as_str(_first(raw, "current_version", "current", "installed_version"))
    new = _as_str(_first(raw, "new_version", "version", "latest_version"))
    available = _as_bool(raw.get("update_available"))
    if new and current and new == current:
        available = False
    return CoreUpdate(
        update_available=available,
        current_version=current,
        new_version=new if available else None,
        package=_as_str(_first(raw, "package", "download")),
    )


def normalize_updates(payload: Any) -> AvailableUpdates:
    """An empty body, empty object or empty category arrays all mean "up to date"."""
    if not isinstance(payload, dict):
        return AvailableUpdates()
    data = payload.get("updates") if isinstance(payload.get("updates"), dict) else payload
    return AvailableUpdates(
        wordpress=normalize_core_update(data.get("wordpress") or data.get("core")),
        plugins=[normalize_update_item(p, "plugin") for p in extract_list(data, "plugins")],
        themes=[normalize_update_item(t, "theme") for t in extract_list(data, "themes")],
    )


def detect_ssl(info: Dict[str, Any], site_url: str = "") -> bool:
    if _as_bool(info.get("ssl_enabled")) or _as_bool(info.get("force_ssl_admin")):
        return True
    for url in (site_url, info.get("home_url"), info.get("site_url")):
        if isinstance(url, str) and url.startswith("https://"):
            return True
    return False


def normalize_status(payload: Dict[str, Any], site_url: str = "") -> SiteStatus:
    if isinstance(payload.get("site_info"), dict):
        info = payload["site_info"]
    else:
        info = payload
    plugin_count = payload.get("plugin_count", info.get("plugin_count"))
    if isinstance(plugin_count, dict):
        plugins_total = _as_int(_first(plugin_count, "total", "plugins_count"))
        plugins_active = _as_int(plugin_count.get("active"))
    else:
        plugins_total = _as_int(plugin_count if plugin_count is not None else info.get("plugins_count"))
        plugins_active = _as_int(info.get("active_plugins_count"))
    if not plugins_total and isinstance(payload.get("plugins"), list):
        plugins_total = len(payload["plugins"])
    theme = payload.get("theme_info") or payload.get("theme")
    return SiteStatus(
        wordpress_version=_as_str(_first(info, "wordpress_version", "wp_version", "version")),
        php_version=_as_str(info.get("php_version")),
        mysql_version=_as_str(info.get("mysql_version")),
        memory_limit=_as_str(info.get("memory_limit")),
        max_execution_time=_as_str(info.get("max_execution_time")),
        ssl_enabled=detect_ssl(info, site_url),
        plugins_count=plugins_total,
        active_plugins_count=plugins_active,
        themes_count=_as_int(_first(info, "themes_count") or payload.get("themes_count")),
        users_count=_as_int(_first(info, "users_count") or payload.get("users_count")),
        maintenance_mode=_as_bool(payload.get("maintenance_mode") or info.get("maintenance_mode")),
        plugin_version=_as_str(payload.get("plugin_version") or info.get("plugin_version")),
        theme=theme if isinstance(theme, dict) else None,
        site_info=dict(info),
    )


def normalize_maintenance(payload: Any) -> MaintenanceState:
    if not isinstance(payload, dict):
        return MaintenanceState(enabled=False)
    if "enabled" in payload:
        enabled = _as_bool(payload["enabled"])
    elif "maintenance_mode" in payload:
        enabled = _as_bool(payload["maintenance_mode"])
    else:
        enabled = payload.get("status") == "enabled"
    return MaintenanceState(enabled=enabled, message=_as_str(payload.get("message")))


def _matches(entry: Dict[str, Any], identifier: str, kind: str) -> bool:
    if kind == "wordpress":
        return entry.get("type") in ("wordpress", "core")
    target = _first(entry, "item", kind, "target", "slug", "plugin_file", "stylesheet")
    return target is not None and (target == identifier or str(target).split("/", 1)[0] == identifier)


def interpret_update_response(payload: Any, identifier: str, kind: str = "plugin") -> Tuple[bool, str, Optional[str]]:
    """Decide whether a single-item update response means success.

    Returns ``(success, message, new_version)``.
    """
    if isinstance(payload, str):
        lowered = payload.lower()
        success = "error" not in lowered and "fail" not in lowered
        return success, payload or ("Updated successfully" if success else "Update failed"), None
    if not isinstance(payload, dict):
        return True, "Updated successfully", None

    results = payload.get("results")
    if isinstance(results, list) and results:
        entries = [r for r in results if isinstance(r, dict)]
        for entry in entries:
            if _matches(entry, identifier, kind):
                return interpret_update_response(entry, identifier, kind)
        success = all(interpret_update_response(e, identifier, kind)[0] for e in entries)
    elif "success" in payload:
        success = _as_bool(payload["success"])
    elif "status" in payload:
        success = str(payload["status"]).lower() in SUCCESS_STATUSES
    else:
        success = not payload.get("error")

    message = payload.get("message")
    if not message and isinstance(payload.get("error"), str):
        message = payload["error"]
    if not message:
        message = "Updated successfully" if success else "Update failed"
    new_version = _as_str(_first(payload, "new_version", "to_version", "version"))
    return success, str(message), new_version


def normalize_action(payload: Any, default_message: str) -> ActionResult:
    message = payload.get("message") if isinstance(payload, dict) else None
    return ActionResult(success=True, message=_as_str(message) or default_message, data=payload)


def _section(raw: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    value = _first(raw, *keys)
    return value if isinstance(value, dict) else {}


def normalize_optimization_info(payload: Any) -> OptimizationInfo:
    """Accepts the nested camelCase shape as well as flat snake_case keys."""
    if not isinstance(payload, dict):
        return OptimizationInfo()
    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
    revisions = _section(data, "postRevisions", "post_revisions")
    database = _section(data, "databaseSize", "database_size", "database")
    trashed = _section(data, "trashedContent", "trashed_content")
    spam = _section(data, "spam")
    return OptimizationInfo(
        post_revisions=_as_int(_first(revisions, "count") if revisions else _first(data, "post_revisions_count")),
        revisions_size=_as_str(_first(revisions, "size")),
        database_size=_as_str(_first(database, "total", "size") if database else _first(data, "database_size")),
        database_tables=_as_int(_first(database, "tables") if database else _first(data, "database_tables")),
        database_overhead=_as_str(_first(database, "overhead") or _first(data, "database_overhead")),
        trashed_posts=_as_int(_first(trashed, "posts")),
        trashed_comments=_as_int(_first(trashed, "comments")),
        spam_comments=_as_int(_first(spam, "comments") if spam else _first(data, "spam_comments")),
        last_optimized=_as_str(_first(data, "lastOptimized", "last_optimized")),
    )


def normalize_optimization_result(payload: Any, action: str) -> OptimizationResult:
    if not isinstance(payload, dict):
        return OptimizationResult(success=True, action=action, message="Optimization completed")
    revisions = _section(payload, "revisions")
    database = _section(payload, "database")
    items_removed = _first(payload, "totalItemsRemoved", "removedCount", "removed_count", "items_removed")
    tables = _first(payload, "tablesOptimized", "tables_optimized") or _first(database, "tablesOptimized")
    if items_removed is None and revisions:
        items_removed = _first(revisions, "removedCount", "removed_count")
    size_freed = _first(payload, "totalSizeFreed", "sizeFreed", "size_freed")
    success = _as_bool(payload["success"]) if "success" in payload else not payload.get("error")
    return OptimizationResult(
        success=success,
        action=action,
        message=_as_str(payload.get("message")) or ("Optimization completed" if success else "Optimization failed"),
        items_removed=_as_int(items_removed),
        tables_optimized=_as_int(tables),
        size_freed=_as_str(size_freed),
    )
