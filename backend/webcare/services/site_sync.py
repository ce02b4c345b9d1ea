import json
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from webcare.models.website import ConnectionStatus, Website
from webcare.services.wp_remote_manager import WPRemoteManagerClient
from webcare.services.wrm_errors import RemoteManagerError, connection_status_for
from webcare.services.wrm_types import RemoteSiteSnapshot

logger = logging.getLogger(__name__)


def set_connection_status(db: Session, website: Website, status: ConnectionStatus):
    website.connection_status = status.value
    website.last_checked_at = datetime.utcnow()
    db.commit()


def record_connection(db: Session, website: Website, error: Optional[Exception] = None):
    """Persist the outcome of the latest remote call on the website row."""
    status = connection_status_for(error)
    set_connection_status(db, website, status)
    if error is not None:
        logger.info(f"Website {website.id} ({website.url}) marked {status.value}: {error}")


def load_snapshot(website: Website) -> Optional[dict]:
    if not website.wp_data:
        return None
    try:
        return json.loads(website.wp_data)
    except ValueError:
        logger.warning(f"Stored snapshot for website {website.id} is not valid JSON")
        return None


async def sync_website(db: Session, website: Website, client: WPRemoteManagerClient) -> RemoteSiteSnapshot:
    """Fetch a fresh snapshot of the site and store it on the website row.

    Remote failures are recorded on the row and re-raised.
    """
    try:
        snapshot = await client.fetch_snapshot()
    except RemoteManagerError as e:
        logger.error(f"Sync of website {website.id} failed: {e.code} {e.message}")
        record_connection(db, website, e)
        raise

    now = datetime.utcnow()
    website.wp_version = snapshot.status.wordpress_version
    website.wp_data = snapshot.model_dump_json()
    website.last_sync = now
    record_connection(db, website)
    logger.info(
        f"Synced website {website.id}: WordPress {website.wp_version}, "
        f"{snapshot.updates.count['total']} updates available"
    )
    return snapshot
