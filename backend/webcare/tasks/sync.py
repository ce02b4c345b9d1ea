import asyncio
import logging

from webcare.core.celery_app import celery_app
from webcare.db.session import SessionLocal
from webcare.models.website import Website
from webcare.services.site_sync import record_connection, sync_website
from webcare.services.wp_remote_manager import WPRemoteManagerClient
from webcare.services.wrm_errors import RemoteManagerError, SiteConfigurationError

logger = logging.getLogger(__name__)


@celery_app.task
def sync_website_task(website_id: int):
    db = SessionLocal()
    try:
        website = db.query(Website).filter(Website.id == website_id).first()
        if not website:
            logger.error(f"Website {website_id} not found")
            return "Website not found"

        try:
            client = WPRemoteManagerClient.from_website(website)
        except SiteConfigurationError as e:
            record_connection(db, website, e)
            return f"Website cannot be synced: {e.code}"

        try:
            asyncio.run(sync_website(db, website, client))
        except RemoteManagerError as e:
            return f"Sync failed for {website.name}: {e.code}"
        return f"Website {website.name} synced successfully"
    finally:
        db.close()


@celery_app.task
def sync_all_websites_task():
    """Queue a sync for every website that has an API key configured."""
    db = SessionLocal()
    try:
        websites = db.query(Website).filter(Website.wrm_api_key.isnot(None)).all()
        queued = 0
        for website in websites:
            if not website.has_api_key:
                continue
            sync_website_task.apply_async(args=[website.id])
            queued += 1
        logger.info(f"Queued sync for {queued} websites")
        return f"Queued {queued} website syncs"
    finally:
        db.close()
