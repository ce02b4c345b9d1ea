import asyncio
import json

import pytest

from webcare.services.site_sync import load_snapshot, sync_website
from webcare.services.wrm_errors import InvalidApiKey, UnexpectedResponseFormat, connection_status_for
from webcare.models.website import ConnectionStatus, Website
from webcare.tasks import sync as sync_tasks


def test_sync_stores_snapshot(db, website, site):
    site.standard()
    snapshot = asyncio.run(sync_website(db, website, site.client()))

    db.refresh(website)
    assert website.wp_version == "6.4.2"
    assert website.connection_status == "connected"
    assert website.last_sync is not None
    assert website.last_checked_at is not None
    stored = load_snapshot(website)
    assert stored["updates"]["count"]["total"] == snapshot.updates.count["total"] == 1
    assert stored["plugins"][0]["plugin"] == "contact-form-7/wp-contact-form-7.php"


def test_sync_failure_records_connection_error(db, website, site):
    site.standard()
    with pytest.raises(InvalidApiKey):
        asyncio.run(sync_website(db, website, site.client(api_key="wrong")))
    db.refresh(website)
    assert website.connection_status == "error"
    assert website.last_sync is None


def test_connection_status_mapping():
    assert connection_status_for(None) == ConnectionStatus.CONNECTED
    assert connection_status_for(InvalidApiKey()) == ConnectionStatus.ERROR
    assert connection_status_for(UnexpectedResponseFormat()) == ConnectionStatus.UNKNOWN


def test_load_snapshot_tolerates_bad_data(website):
    website.wp_data = "{broken"
    assert load_snapshot(website) is None
    website.wp_data = json.dumps({"status": {}})
    assert load_snapshot(website) == {"status": {}}


def test_sync_all_websites_queues_sites_with_keys(db, website, monkeypatch):
    db.add(Website(client_id=website.client_id, name="No key", url="https://nokey.test", wrm_api_key="  "))
    db.commit()
    queued = []
    monkeypatch.setattr(sync_tasks, "SessionLocal", lambda: db)
    monkeypatch.setattr(db, "close", lambda: None)
    monkeypatch.setattr(sync_tasks.sync_website_task, "apply_async", lambda args: queued.append(args))

    result = sync_tasks.sync_all_websites_task()
    assert queued == [[website.id]]
    assert result == "Queued 1 website syncs"


def test_sync_website_task_without_key_marks_error(db, website, monkeypatch):
    website.wrm_api_key = None
    db.commit()
    monkeypatch.setattr(sync_tasks, "SessionLocal", lambda: db)
    monkeypatch.setattr(db, "close", lambda: None)

    assert sync_tasks.sync_website_task(website.id) == "Website cannot be synced: NO_API_KEY"
    db.refresh(website)
    assert website.connection_status == "error"
