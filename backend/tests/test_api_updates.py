import httpx

from webcare.models.update_log import UpdateLog


def test_bulk_update_single_plugin(api, auth_headers, website, site, db):
    site.standard()
    response = api.post(
        f"/api/v1/websites/{website.id}/updates",
        json={"plugins": ["contact-form-7"]},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["plugins"] == [{
        "target": "contact-form-7",
        "name": "contact-form-7",
        "success": True,
        "status": "success",
        "message": "Plugin updated successfully",
        "from_version": "5.8",
        "to_version": "5.9",
        "error_code": None,
    }]
    assert data["maintenance"]["disabled"] is True

    [log] = db.query(UpdateLog).all()
    assert log.update_type == "plugin"
    assert log.item_slug == "contact-form-7"
    assert log.update_status == "success"
    assert log.from_version == "5.8"
    assert log.to_version == "5.9"
    assert log.automated_update is False
    db.refresh(website)
    assert website.last_update is not None
    assert website.connection_status == "connected"


def test_empty_update_request(api, auth_headers, website, site, db):
    response = api.post(f"/api/v1/websites/{website.id}/updates", json={}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert site.requests == []
    assert db.query(UpdateLog).count() == 0


def test_partial_failure_is_logged_per_item(api, auth_headers, website, site, db):
    site.standard()
    site.route("POST", "/update-theme", lambda request: httpx.Response(
        500, json={"code": "update_failed", "message": "Theme package missing"}))
    response = api.post(
        f"/api/v1/websites/{website.id}/updates",
        json={"plugins": ["contact-form-7"], "themes": ["twentytwentyfour"], "maintenance_mode": False},
        headers=auth_headers,
    )
    data = response.json()
    assert data["success"] is False
    assert data["partial_failure"] is True
    assert data["themes"][0]["message"] == "Theme package missing"
    assert data["failed"]["themes"] == ["twentytwentyfour"]
    assert data["maintenance"]["requested"] is False

    statuses = {log.item_slug: log.update_status for log in db.query(UpdateLog).all()}
    assert statuses == {"contact-form-7": "success", "twentytwentyfour": "failed"}
    failed = db.query(UpdateLog).filter(UpdateLog.update_status == "failed").one()
    assert failed.error_message == "Theme package missing"


def test_concurrent_update_is_rejected(api, auth_headers, website, site, fake_redis):
    site.standard()
    fake_redis.held.add(f"webcare:website-update:{website.id}")
    response = api.post(
        f"/api/v1/websites/{website.id}/updates",
        json={"plugins": ["contact-form-7"]},
        headers=auth_headers,
    )
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "UPDATE_IN_PROGRESS"
    assert site.requests == []


def test_lock_is_released_after_run(api, auth_headers, website, site, fake_redis):
    site.standard()
    api.post(f"/api/v1/websites/{website.id}/update-plugin", json={"plugin": "contact-form-7"}, headers=auth_headers)
    assert fake_redis.held == set()


def test_single_plugin_update_skips_maintenance(api, auth_headers, website, site):
    site.standard()
    response = api.post(
        f"/api/v1/websites/{website.id}/update-plugin",
        json={"plugin": "contact-form-7"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert ("POST", "/maintenance") not in site.calls()


def test_update_wordpress(api, auth_headers, website, site, db):
    site.standard()
    state = {"version": "6.4.2"}
    site.route("GET", "/status", lambda request: {"site_info": {"wordpress_version": state["version"]}})

    def update_core(request):
        state["version"] = "6.5"
        return {"success": True, "message": "WordPress updated"}

    site.route("POST", "/update-wordpress", update_core)
    data = api.post(f"/api/v1/websites/{website.id}/update-wordpress", headers=auth_headers).json()
    assert data["wordpress"]["success"] is True
    assert data["wordpress"]["from_version"] == "6.4.2"
    assert data["wordpress"]["to_version"] == "6.5"
    db.refresh(website)
    assert website.wp_version == "6.5"


def test_unreachable_site_marks_error(api, auth_headers, website, site, db):
    site.standard()
    site.route("POST", "/update-theme", lambda request: {"success": True})

    def down(request):
        raise httpx.ConnectError("refused", request=request)

    site.handler = down
    response = api.post(
        f"/api/v1/websites/{website.id}/update-theme",
        json={"theme": "twentytwentyfour"},
        headers=auth_headers,
    )
    assert response.json()["themes"][0]["error_code"] == "SITE_UNREACHABLE"
    db.refresh(website)
    assert website.connection_status == "error"


def test_update_logs_and_maintenance_report(api, auth_headers, website, site):
    site.standard()
    site.route("POST", "/update-plugin", lambda request: {"success": False, "message": "Disk full"})
    api.post(f"/api/v1/websites/{website.id}/update-plugin", json={"plugin": "akismet/akismet.php"}, headers=auth_headers)
    api.post(f"/api/v1/websites/{website.id}/sync", headers=auth_headers)

    logs = api.get(f"/api/v1/websites/{website.id}/update-logs", headers=auth_headers).json()
    assert len(logs) == 1
    assert logs[0]["update_status"] == "failed"
    assert logs[0]["error_message"] == "Disk full"

    report = api.get(f"/api/v1/websites/{website.id}/maintenance-report?days=7", headers=auth_headers).json()
    assert report["total_updates"] == 1
    assert report["failed_updates"] == 1
    assert report["by_type"]["plugin"] == 1
    assert report["current"]["wordpress_version"] == "6.4.2"
    assert report["current"]["pending_updates"] == 1


def test_bulk_flag_sends_one_perform_request(api, auth_headers, website, site, db):
    site.standard()
    site.route("POST", "/updates/perform", {"success": True, "results": [
        {"type": "plugin", "item": "contact-form-7", "status": "completed", "message": "Updated"},
    ]})
    response = api.post(
        f"/api/v1/websites/{website.id}/updates",
        json={"plugins": ["contact-form-7"], "bulk": True},
        headers=auth_headers,
    )
    assert response.json()["success"] is True
    assert site.calls("/update-plugin") == []
    assert db.query(UpdateLog).one().update_status == "success"


def test_expired_lock_does_not_hide_the_report(api, auth_headers, website, site, fake_redis):
    site.standard()
    fake_redis.expire_on_release = True
    response = api.post(
        f"/api/v1/websites/{website.id}/update-plugin",
        json={"plugin": "contact-form-7"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["success"] is True
