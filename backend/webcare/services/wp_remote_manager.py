"""
Async client for the WP Remote Manager companion plugin.

One client talks to one WordPress site with that site's own API key. Two
generations of the plugin are in the wild: the secure one under
``/wp-json/wrms/v1`` and the legacy one under ``/wp-json/wrm/v1``. Every call
walks the ordered strategy list below and stops at the first answer it can
classify; whatever goes wrong is raised as one of the ``wrm_errors`` classes.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from webcare.core.config import settings
from webcare.services.wrm_errors import (
    InvalidApiKey,
    InvalidSiteUrl,
    MalformedApiKey,
    MissingApiKey,
    PluginNotInstalled,
    RateLimited,
    RemoteManagerError,
    RemoteSiteError,
    RequestTimeout,
    SiteUnreachable,
    UnexpectedResponseFormat,
)
from webcare.services.wrm_normalize import (
    extract_list,
    interpret_update_response,
    normalize_action,
    normalize_maintenance,
    normalize_optimization_info,
    normalize_optimization_result,
    normalize_plugin,
    normalize_status,
    normalize_theme,
    normalize_updates,
    normalize_user,
)
from webcare.services.wrm_types import (
    ActionResult,
    ApiKeyValidation,
    AvailableUpdates,
    ItemOutcome,
    ItemStatus,
    KeyState,
    MaintenanceState,
    OptimizationInfo,
    OptimizationResult,
    PluginInfo,
    RemoteSiteSnapshot,
    SiteStatus,
    ThemeInfo,
    UpdateReport,
    UpdateRequest,
    UserInfo,
)

logger = logging.getLogger(__name__)

USER_AGENT = f"{settings.PROJECT_NAME}/{settings.VERSION}"


@dataclass(frozen=True)
class Strategy:
    name: str
    namespace: str
    key_headers: Tuple[str, ...]


STRATEGIES = (
    Strategy("secure", "/wp-json/wrms/v1", ("X-WRMS-API-Key", "X-WRM-API-Key")),
    Strategy("legacy", "/wp-json/wrm/v1", ("X-WRM-API-Key",)),
)

# Per-attempt outcomes that move on to the next strategy
NOT_FOUND = "not_found"
AUTH_REJECTED = "auth_rejected"
HTML_BODY = "html"
MALFORMED = "malformed"
OK = "ok"


def _looks_like_html(response: httpx.Response) -> bool:
    if "text/html" in response.headers.get("content-type", ""):
        return True
    head = response.text.lstrip()[:20].lower()
    return head.startswith("<!doctype") or head.startswith("<html")


def _normalize_site_url(url: Optional[str]) -> str:
    url = (url or "").strip().rstrip("/")
    if not url:
        raise InvalidSiteUrl()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    try:
        parsed = httpx.URL(url)
        host, port = parsed.host, parsed.port
    except (httpx.InvalidURL, ValueError) as e:
        raise InvalidSiteUrl(f"The website URL {url!r} is not valid: {e}") from e
    if not host or (port is not None and not 0 < port < 65536):
        raise InvalidSiteUrl()
    return url


def _remote_message(payload: Any) -> Tuple[Optional[str], Optional[str]]:
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("error"), payload.get("code")
    return None, None


def _ensure_success(payload: Any) -> Any:
    if isinstance(payload, dict) and payload.get("success") is False:
        message, code = _remote_message(payload)
        raise RemoteSiteError(message, remote_code=code)
    return payload


class WPRemoteManagerClient:
    def __init__(
        self,
        url: str,
        api_key: Optional[str],
        *,
        timeout: float = 30.0,
        update_timeout: float = 240.0,
        min_request_interval: float = 3.0,
        rate_limit_wait: float = 65.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key or not api_key.strip():
            raise MissingApiKey()
        api_key = api_key.strip()
        # header values must be printable ASCII
        if not (api_key.isascii() and api_key.isprintable()):
            raise MalformedApiKey()
        self.base_url = _normalize_site_url(url)
        self.api_key = api_key
        self.timeout = timeout
        self.update_timeout = update_timeout
        self.min_request_interval = min_request_interval
        self.rate_limit_wait = rate_limit_wait
        self._transport = transport
        self._last_request_at: Optional[float] = None

    @classmethod
    def from_website(cls, website, transport: Optional[httpx.AsyncBaseTransport] = None) -> "WPRemoteManagerClient":
        return cls(
            website.url,
            website.wrm_api_key,
            timeout=settings.WRM_TIMEOUT,
            update_timeout=settings.WRM_UPDATE_TIMEOUT,
            min_request_interval=settings.WRM_MIN_REQUEST_INTERVAL,
            rate_limit_wait=settings.WRM_RATE_LIMIT_WAIT,
            transport=transport,
        )

    def _headers(self, strategy: Strategy) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        for name in strategy.key_headers:
            headers[name] = self.api_key
        return headers

    async def _wait_for_slot(self):
        if self._last_request_at is not None and self.min_request_interval > 0:
            delay = self.min_request_interval - (time.monotonic() - self._last_request_at)
            if delay > 0:
                await asyncio.sleep(delay)
        self._last_request_at = time.monotonic()

    async def _send(self, strategy: Strategy, method: str, path: str, **kwargs) -> httpx.Response:
        timeout = kwargs.pop("timeout", None) or self.timeout
        url = f"{self.base_url}{strategy.namespace}{path}"
        await self._wait_for_slot()
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=self._transport) as client:
            try:
                response = await client.request(method, url, headers=self._headers(strategy), **kwargs)
            except httpx.TimeoutException as e:
                logger.error(f"Timeout calling {method} {url}: {e}")
                raise RequestTimeout() from e
            except httpx.InvalidURL as e:
                logger.error(f"Invalid URL {url}: {e}")
                raise InvalidSiteUrl() from e
            except httpx.RequestError as e:
                logger.error(f"Connection error calling {method} {url}: {e}")
                raise SiteUnreachable() from e
        if response.status_code == 429:
            logger.warning(f"Rate limited by {self.base_url} ({strategy.name})")
            raise RateLimited(status_code=429)
        return response

    async def _attempt(self, strategy: Strategy, method: str, path: str, **kwargs) -> Tuple[str, Any]:
        response = None
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(RateLimited),
            stop=stop_after_attempt(2),
            wait=wait_fixed(self.rate_limit_wait),
            reraise=True,
        ):
            with attempt:
                response = await self._send(strategy, method, path, **dict(kwargs))

        status = response.status_code
        if status == 404:
            return NOT_FOUND, None
        if status in (401, 403):
            return AUTH_REJECTED, None
        if _looks_like_html(response):
            return HTML_BODY, None

        if not response.content.strip():
            payload: Any = {}
        else:
            try:
                payload = response.json()
            except ValueError:
                payload = None

        if 200 <= status < 300:
            return (OK, payload) if payload is not None else (MALFORMED, None)
        if isinstance(payload, dict) and payload.get("code") == "rest_no_route":
            return NOT_FOUND, None
        message, code = _remote_message(payload)
        raise RemoteSiteError(message or f"HTTP {status} from WordPress site", status_code=status, remote_code=code)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        outcomes = []
        for strategy in STRATEGIES:
            outcome, payload = await self._attempt(strategy, method, path, **kwargs)
            if outcome == OK:
                logger.debug(f"{method} {path} answered by {strategy.name} endpoint of {self.base_url}")
                return payload
            logger.info(f"{method} {path} on {self.base_url}: {strategy.name} endpoint gave {outcome}, trying next")
            outcomes.append(outcome)

        logger.warning(
            f"All endpoints failed for {method} {path} on {self.base_url} "
            f"(key {self.api_key[:8]}...): {outcomes}"
        )
        if AUTH_REJECTED in outcomes:
            raise InvalidApiKey()
        if HTML_BODY in outcomes or MALFORMED in outcomes:
            raise UnexpectedResponseFormat()
        raise PluginNotInstalled()

    async def _read(self, path: str, **kwargs) -> Any:
        return _ensure_success(await self._request("GET", path, **kwargs))

    # Reads

    async def fetch_status(self) -> SiteStatus:
        payload = await self._read("/status")
        if not isinstance(payload, dict):
            raise UnexpectedResponseFormat()
        return normalize_status(payload, self.base_url)

    async def fetch_health(self) -> Dict[str, Any]:
        payload = await self._read("/health")
        if not isinstance(payload, dict):
            raise UnexpectedResponseFormat()
        return payload

    async def fetch_plugins(self) -> List[PluginInfo]:
        payload = await self._read("/plugins")
        return [normalize_plugin(p) for p in extract_list(payload, "plugins")]

    async def fetch_themes(self) -> List[ThemeInfo]:
        payload = await self._read("/themes")
        return [normalize_theme(t) for t in extract_list(payload, "themes")]

    async def fetch_users(self) -> List[UserInfo]:
        attempts = [
            ("/users/detailed", None),
            ("/users", {"include_email": "true", "detailed": "true"}),
            ("/users", None),
        ]
        payload: Any = None
        for path, params in attempts:
            try:
                payload = await self._read(path, params=params)
            except PluginNotInstalled:
                logger.info(f"{path} not available on {self.base_url}, trying next users endpoint")
                continue
            if isinstance(payload, list) or (isinstance(payload, dict) and isinstance(payload.get("users"), (list, dict))):
                break
        if payload is None:
            raise PluginNotInstalled()
        return [normalize_user(u) for u in extract_list(payload, "users")]

    async def fetch_updates(self) -> AvailableUpdates:
        payload = await self._read("/updates")
        updates = normalize_updates(payload)

        if any(item.current_version is None for item in updates.plugins):
            try:
                installed = await self.fetch_plugins()
            except RemoteManagerError as e:
                logger.warning(f"Could not backfill plugin versions for {self.base_url}: {e.message}")
            else:
                for item in updates.plugins:
                    if item.current_version is None:
                        match = next(
                            (p for p in installed if item.identifier in (p.plugin, p.slug) or item.name == p.name),
                            None,
                        )
                        item.current_version = match.version if match else None

        if any(item.current_version is None for item in updates.themes):
            try:
                installed_themes = await self.fetch_themes()
            except RemoteManagerError as e:
                logger.warning(f"Could not backfill theme versions for {self.base_url}: {e.message}")
            else:
                for item in updates.themes:
                    if item.current_version is None:
                        match = next(
                            (t for t in installed_themes if item.identifier == t.stylesheet or item.name == t.name),
                            None,
                        )
                        item.current_version = match.version if match else None

        core = updates.wordpress
        if core.update_available and not core.current_version:
            try:
                core.current_version = (await self.fetch_status()).wordpress_version
            except RemoteManagerError as e:
                logger.warning(f"Could not backfill WordPress version for {self.base_url}: {e.message}")

        return updates

    async def fetch_snapshot(self) -> RemoteSiteSnapshot:
        status = await self.fetch_status()
        updates = await self.fetch_updates()
        plugins = await self.fetch_plugins()
        themes = await self.fetch_themes()
        try:
            users = await self.fetch_users()
        except RemoteManagerError as e:
            logger.warning(f"Users unavailable for {self.base_url}: {e.message}")
            users = []
        return RemoteSiteSnapshot(status=status, updates=updates, plugins=plugins, themes=themes, users=users)

    async def get_maintenance_mode(self) -> MaintenanceState:
        try:
            payload = await self._read("/maintenance")
        except PluginNotInstalled:
            payload = await self._read("/maintenance/status")
        return normalize_maintenance(payload)

    # Mutations

    async def set_maintenance_mode(self, enabled: bool, message: Optional[str] = None) -> MaintenanceState:
        body = {"enabled": enabled, "message": message or settings.MAINTENANCE_MESSAGE}
        try:
            payload = await self._request("POST", "/maintenance", json=body)
        except PluginNotInstalled:
            path = "/maintenance/enable" if enabled else "/maintenance/disable"
            payload = await self._request("POST", path, json={"message": body["message"]})
        _ensure_success(payload)
        logger.info(f"Maintenance mode {'enabled' if enabled else 'disabled'} on {self.base_url}")
        state_message = payload.get("message") if isinstance(payload, dict) else None
        return MaintenanceState(enabled=enabled, message=state_message or body["message"])

    async def _update_item(self, path: str, body: Dict[str, Any], target: str, kind: str) -> ItemOutcome:
        started = time.monotonic()
        logger.info(f"Updating {kind} {target} on {self.base_url}")
        payload = await self._request("POST", path, json=body, timeout=self.update_timeout)
        success, message, new_version = interpret_update_response(payload, target, kind)
        if not success:
            logger.warning(f"Update of {kind} {target} on {self.base_url} failed: {message}")
        return ItemOutcome(
            target=target,
            status=ItemStatus.SUCCESS if success else ItemStatus.FAILED,
            message=message,
            to_version=new_version,
            error_code=None if success else "UPDATE_FAILED",
            raw=payload,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    async def update_plugin(self, plugin: str) -> ItemOutcome:
        return await self._update_item("/update-plugin", {"plugin": plugin}, plugin, "plugin")

    async def update_theme(self, theme: str) -> ItemOutcome:
        return await self._update_item("/update-theme", {"theme": theme}, theme, "theme")

    async def update_wordpress(self) -> ItemOutcome:
        return await self._update_item("/update-wordpress", {}, "wordpress", "wordpress")

    async def perform_updates(self, request: UpdateRequest) -> UpdateReport:
        """Bulk variant: one request, results parsed per requested item."""
        body = {"wordpress": request.wordpress, "plugins": request.plugins, "themes": request.themes}
        payload = await self._request("POST", "/updates/perform", json=body, timeout=self.update_timeout)

        def outcome(target: str, kind: str) -> ItemOutcome:
            success, message, new_version = interpret_update_response(payload, target, kind)
            return ItemOutcome(
                target=target,
                status=ItemStatus.SUCCESS if success else ItemStatus.FAILED,
                message=message,
                to_version=new_version,
                error_code=None if success else "UPDATE_FAILED",
            )

        report = UpdateReport()
        if request.wordpress:
            report.wordpress = outcome("wordpress", "wordpress")
        report.plugins = [outcome(p, "plugin") for p in request.plugins]
        report.themes = [outcome(t, "theme") for t in request.themes]
        return report

    # Plugin and theme management

    async def _action(self, method: str, path: str, body: Dict[str, Any], default_message: str) -> ActionResult:
        payload = _ensure_success(await self._request(method, path, json=body))
        return normalize_action(payload, default_message)

    async def activate_plugin(self, plugin: str) -> ActionResult:
        return await self._action("POST", "/plugins/activate", {"plugin": plugin}, "Plugin activated")

    async def deactivate_plugin(self, plugin: str) -> ActionResult:
        return await self._action("POST", "/plugins/deactivate", {"plugin": plugin}, "Plugin deactivated")

    async def install_plugin(self, slug: str, activate: bool = True) -> ActionResult:
        """Install a plugin from the wordpress.org repository."""
        logger.info(f"Installing plugin {slug} on {self.base_url}")
        return await self._action(
            "POST", "/plugins/install", {"plugin": slug, "activate": activate}, "Plugin installed"
        )

    async def activate_theme(self, theme: str) -> ActionResult:
        return await self._action("POST", "/themes/activate", {"theme": theme}, "Theme activated")

    async def delete_theme(self, theme: str) -> ActionResult:
        """Delete an installed theme; older plugins only know ``POST /themes/delete``."""
        logger.info(f"Deleting theme {theme} on {self.base_url}")
        try:
            payload = await self._request("DELETE", f"/themes/{quote(theme, safe='')}")
        except PluginNotInstalled:
            payload = await self._request("POST", "/themes/delete", json={"stylesheet": theme})
        return normalize_action(_ensure_success(payload), "Theme deleted")

    # Database optimization

    async def fetch_optimization_info(self) -> OptimizationInfo:
        return normalize_optimization_info(await self._read("/optimization/info"))

    async def _optimize(self, action: str) -> OptimizationResult:
        logger.info(f"Running {action} optimization on {self.base_url}")
        payload = await self._request("POST", f"/optimization/{action}", json={}, timeout=self.update_timeout)
        return normalize_optimization_result(_ensure_success(payload), action)

    async def optimize_post_revisions(self) -> OptimizationResult:
        return await self._optimize("revisions")

    async def optimize_database(self) -> OptimizationResult:
        return await self._optimize("database")

    async def optimize_all(self) -> OptimizationResult:
        return await self._optimize("all")

    async def validate_api_key(self) -> ApiKeyValidation:
        """Call ``/status`` and report the key state instead of raising."""
        try:
            await self._read("/status")
        except InvalidApiKey as e:
            return ApiKeyValidation(valid=False, state=KeyState.INVALID_KEY, code=e.code, message=e.message)
        except PluginNotInstalled as e:
            return ApiKeyValidation(valid=False, state=KeyState.PLUGIN_MISSING, code=e.code, message=e.message)
        except SiteUnreachable as e:
            return ApiKeyValidation(valid=False, state=KeyState.UNREACHABLE, code=e.code, message=e.message)
        except UnexpectedResponseFormat as e:
            return ApiKeyValidation(valid=False, state=KeyState.UNEXPECTED_RESPONSE, code=e.code, message=e.message)
        except RemoteManagerError as e:
            return ApiKeyValidation(valid=False, state=KeyState.ERROR, code=e.code, message=e.message)
        return ApiKeyValidation(valid=True, state=KeyState.VALID, message="API key is valid and the plugin is responding.")
