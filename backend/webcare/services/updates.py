"""
Update Orchestrator.

Runs one update request against one site: records installed versions, puts
the site into maintenance mode, applies core, plugin and theme updates one at
a time, always takes the site back out of maintenance mode and reports a
per-item outcome.
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_attempt, wait_exponential

from webcare.services.wp_remote_manager import WPRemoteManagerClient
from webcare.services.wrm_errors import PluginNotInstalled, RemoteManagerError, RequestTimeout
from webcare.services.wrm_types import (
    ItemOutcome,
    ItemStatus,
    MaintenanceBracket,
    UpdateReport,
    UpdateRequest,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def maintenance_window(client: WPRemoteManagerClient, bracket: MaintenanceBracket, report: UpdateReport,
                             message: Optional[str] = None):
    """Enable maintenance mode for the duration of the block.

    Enabling is best-effort. Disabling is attempted on every exit path,
    including exceptions raised inside the block.
    """
    bracket.requested = True
    try:
        await client.set_maintenance_mode(True, message)
        bracket.enabled = True
    except RemoteManagerError as e:
        logger.warning(f"Could not enable maintenance mode on {client.base_url}: {e.message}")
        report.warnings.append(f"Maintenance mode could not be enabled: {e.message}")
    try:
        yield bracket
    finally:
        try:
            await client.set_maintenance_mode(False)
            bracket.disabled = True
        except RemoteManagerError as e:
            logger.error(f"Could not disable maintenance mode on {client.base_url}: {e.message}")
            report.warnings.append(f"Maintenance mode could not be disabled, check the site: {e.message}")


class UpdateOrchestrator:
    def __init__(self, client: WPRemoteManagerClient, *, use_maintenance: bool = True, bulk: bool = False,
                 verify_attempts: int = 4, verify_wait: float = 5.0, maintenance_message: Optional[str] = None):
        self.client = client
        self.use_maintenance = use_maintenance
        self.bulk = bulk
        self.verify_attempts = verify_attempts
        self.verify_wait = verify_wait
        self.maintenance_message = maintenance_message
        self._versions: Dict[str, Dict[str, Optional[str]]] = {"plugin": {}, "theme": {}, "wordpress": {}}
        self._names: Dict[str, Dict[str, str]] = {"plugin": {}, "theme": {}, "wordpress": {}}

    async def run(self, request: UpdateRequest) -> UpdateReport:
        report = UpdateReport()
        if request.is_empty:
            return report

        await self._record_versions(request, report)
        apply = self._apply_bulk if self.bulk else self._apply

        if self.use_maintenance:
            async with maintenance_window(self.client, report.maintenance, report, self.maintenance_message):
                await apply(request, report)
        else:
            await apply(request, report)

        await self._fill_new_versions(report)
        logger.info(
            f"Update run on {self.client.base_url} finished: "
            f"{sum(o.success for o in report.outcomes())}/{len(report.outcomes())} succeeded"
        )
        return report

    async def _apply(self, request: UpdateRequest, report: UpdateReport):
        if request.wordpress:
            report.wordpress = await self._update_one("wordpress", "wordpress")
        for plugin in request.plugins:
            report.plugins.append(await self._update_one("plugin", plugin))
        for theme in request.themes:
            report.themes.append(await self._update_one("theme", theme))

    async def _apply_bulk(self, request: UpdateRequest, report: UpdateReport):
        """Send the whole request to ``/updates/perform`` in one call.

        Sites without the bulk route get the item-by-item run instead.
        """
        started = time.monotonic()
        items = [("wordpress", "wordpress")] if request.wordpress else []
        items += [("plugin", p) for p in request.plugins]
        items += [("theme", t) for t in request.themes]
        try:
            bulk = await self.client.perform_updates(request)
        except PluginNotInstalled:
            logger.info(f"No bulk update route on {self.client.base_url}, updating items one at a time")
            await self._apply(request, report)
            return
        except RequestTimeout:
            logger.warning(f"Bulk update on {self.client.base_url} timed out, verifying each item")
            outcomes = [
                await self._verify_after_timeout(kind, target, self._versions[kind].get(target))
                for kind, target in items
            ]
        except RemoteManagerError as e:
            logger.warning(f"Bulk update on {self.client.base_url} failed: {e.message}")
            outcomes = [
                ItemOutcome(target=target, status=ItemStatus.FAILED, message=e.message, error_code=e.code)
                for _, target in items
            ]
        else:
            outcomes = bulk.outcomes()

        for (kind, target), outcome in zip(items, outcomes):
            self._complete(kind, target, outcome, started)
            if kind == "wordpress":
                report.wordpress = outcome
            elif kind == "plugin":
                report.plugins.append(outcome)
            else:
                report.themes.append(outcome)

    def _complete(self, kind: str, target: str, outcome: ItemOutcome, started: float) -> ItemOutcome:
        outcome.from_version = outcome.from_version or self._versions[kind].get(target)
        outcome.name = outcome.name or self._names[kind].get(target, target)
        outcome.duration_ms = int((time.monotonic() - started) * 1000)
        return outcome

    async def _update_one(self, kind: str, target: str) -> ItemOutcome:
        started = time.monotonic()
        from_version = self._versions[kind].get(target)
        try:
            if kind == "wordpress":
                outcome = await self.client.update_wordpress()
            elif kind == "plugin":
                outcome = await self.client.update_plugin(target)
            else:
                outcome = await self.client.update_theme(target)
        except RequestTimeout:
            logger.warning(f"Update of {kind} {target} on {self.client.base_url} timed out, verifying")
            outcome = await self._verify_after_timeout(kind, target, from_version)
        except RemoteManagerError as e:
            logger.warning(f"Update of {kind} {target} on {self.client.base_url} failed: {e.message}")
            outcome = ItemOutcome(target=target, status=ItemStatus.FAILED, message=e.message, error_code=e.code)
        return self._complete(kind, target, outcome, started)

    async def _current_version(self, kind: str, target: str) -> Optional[str]:
        if kind == "wordpress":
            return (await self.client.fetch_status()).wordpress_version
        if kind == "plugin":
            for plugin in await self.client.fetch_plugins():
                if target in (plugin.plugin, plugin.slug):
                    return plugin.version
            return None
        for theme in await self.client.fetch_themes():
            if target == theme.stylesheet:
                return theme.version
        return None

    async def _verify_after_timeout(self, kind: str, target: str, from_version: Optional[str]) -> ItemOutcome:
        """Poll the installed version; an update request is never resent."""
        def unchanged(version: Optional[str]) -> bool:
            return version is None or version == from_version

        version = None
        if from_version is None:
            logger.warning(f"No recorded version for {kind} {target}, cannot verify after timeout")
            return self._in_progress(target)
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_result(unchanged),
                stop=stop_after_attempt(self.verify_attempts),
                wait=wait_exponential(multiplier=self.verify_wait, max=self.verify_wait * 8),
            ):
                with attempt:
                    version = await self._current_version(kind, target)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(version)
        except RetryError:
            version = None
        except RemoteManagerError as e:
            logger.warning(f"Could not verify {kind} {target} after timeout: {e.message}")
            version = None

        if version is not None and not unchanged(version):
            return ItemOutcome(
                target=target,
                status=ItemStatus.SUCCESS,
                message="Update verified after timeout",
                to_version=version,
            )
        return self._in_progress(target)

    @staticmethod
    def _in_progress(target: str) -> ItemOutcome:
        return ItemOutcome(
            target=target,
            status=ItemStatus.IN_PROGRESS,
            message="The update timed out and may still be completing on the site. Check again in a few minutes.",
            error_code=RequestTimeout.code,
        )

    async def _record_versions(self, request: UpdateRequest, report: UpdateReport):
        """Best-effort; each listing failing only loses the versions of its own kind."""
        if request.plugins:
            try:
                for plugin in await self.client.fetch_plugins():
                    for key in (plugin.plugin, plugin.slug):
                        self._versions["plugin"][key] = plugin.version
                        self._names["plugin"][key] = plugin.name
            except RemoteManagerError as e:
                self._record_failed("plugin", e, report)
        if request.themes:
            try:
                for theme in await self.client.fetch_themes():
                    self._versions["theme"][theme.stylesheet] = theme.version
                    self._names["theme"][theme.stylesheet] = theme.name
            except RemoteManagerError as e:
                self._record_failed("theme", e, report)
        if request.wordpress:
            self._names["wordpress"]["wordpress"] = "WordPress"
            try:
                self._versions["wordpress"]["wordpress"] = (await self.client.fetch_status()).wordpress_version
            except RemoteManagerError as e:
                self._record_failed("WordPress", e, report)

    def _record_failed(self, kind: str, error: RemoteManagerError, report: UpdateReport):
        logger.warning(f"Could not record current {kind} versions on {self.client.base_url}: {error.message}")
        report.warnings.append(f"Current {kind} versions could not be recorded: {error.message}")

    async def _fill_new_versions(self, report: UpdateReport):
        plugins = [o for o in report.plugins if o.success and not o.to_version]
        themes = [o for o in report.themes if o.success and not o.to_version]
        core = report.wordpress
        refresh_core = bool(core and core.success and not core.to_version)
        if not (plugins or themes or refresh_core):
            return
        try:
            if plugins:
                installed = {}
                for plugin in await self.client.fetch_plugins():
                    installed[plugin.plugin] = plugin.version
                    installed[plugin.slug] = plugin.version
                for o in plugins:
                    o.to_version = installed.get(o.target)
            if themes:
                installed_themes = {t.stylesheet: t.version for t in await self.client.fetch_themes()}
                for o in themes:
                    o.to_version = installed_themes.get(o.target)
            if refresh_core:
                core.to_version = (await self.client.fetch_status()).wordpress_version
        except RemoteManagerError as e:
            logger.warning(f"Could not refresh versions after updates on {self.client.base_url}: {e.message}")
            report.warnings.append(f"New versions could not be confirmed: {e.message}")
