from webcare.services.wrm_normalize import (
    detect_ssl,
    extract_list,
    interpret_update_response,
    normalize_core_update,
    normalize_maintenance,
    normalize_optimization_info,
    normalize_optimization_result,
    normalize_plugin,
    normalize_status,
    normalize_theme,
    normalize_updates,
    normalize_user,
)


def test_extract_list_accepts_every_wrapping():
    items = [{"name": "a"}]
    assert extract_list(items, "plugins") == items
    assert extract_list({"success": True, "plugins": items}, "plugins") == items
    assert extract_list({"plugins": items}, "plugins") == items
    assert extract_list({"success": True}, "plugins") == []
    assert extract_list({"plugins": None}, "plugins") == []
    assert extract_list(None, "plugins") == []


def test_extract_list_keyed_by_plugin_path():
    payload = {"plugins": {"akismet/akismet.php": {"Name": "Akismet", "Version": "5.3"}}}
    [raw] = extract_list(payload, "plugins")
    plugin = normalize_plugin(raw)
    assert plugin.plugin == "akismet/akismet.php"
    assert plugin.slug == "akismet"
    assert plugin.name == "Akismet"
    assert plugin.version == "5.3"


def test_normalize_plugin_field_variants():
    plugin = normalize_plugin({"title": "Hello", "path": "hello-dolly/hello.php", "version": "1.7", "active": "1"})
    assert plugin.plugin == "hello-dolly/hello.php"
    assert plugin.name == "Hello"
    assert plugin.active is True
    assert plugin.update_available is False

    plugin = normalize_plugin({"plugin": "seo/seo.php", "status": "active", "version": "2.0", "new_version": "2.1"})
    assert plugin.active is True
    assert plugin.update_available is True
    assert plugin.new_version == "2.1"


def test_normalize_theme_parent_from_template():
    theme = normalize_theme({"name": "Child", "stylesheet": "child", "template": "parent", "version": "1.0"})
    assert theme.stylesheet == "child"
    assert theme.parent == "parent"
    theme = normalize_theme({"name": "Solo", "slug": "solo"})
    assert theme.template == "solo"
    assert theme.parent is None


def test_normalize_user_variants():
    user = normalize_user({"ID": "7", "user_login": "editor", "user_email": "e@example.com",
                           "user_registered": "2023-01-01 10:00:00", "role": "editor"})
    assert user.id == 7
    assert user.username == "editor"
    assert user.email == "e@example.com"
    assert user.display_name == "editor"
    assert user.roles == ["editor"]
    assert user.registered_date == "2023-01-01 10:00:00"

    user = normalize_user({"id": 1, "username": "admin", "roles": ["administrator"], "post_count": "12"})
    assert user.roles == ["administrator"]
    assert user.post_count == 12


def test_core_update_as_offer_list():
    core = normalize_core_update([{"response": "upgrade", "version": "6.5", "current": "6.4.2"}])
    assert core.update_available is True
    assert core.new_version == "6.5"
    assert core.current_version == "6.4.2"
    assert normalize_core_update([{"response": "latest", "version": "6.4.2"}]).update_available is False
    assert normalize_core_update([]).update_available is False


def test_core_update_same_version_is_not_an_update():
    core = normalize_core_update({"update_available": True, "current_version": "6.4", "new_version": "6.4"})
    assert core.update_available is False


def test_empty_updates_mean_up_to_date():
    for payload in ({}, None, "", {"success": True}, {"updates": {"plugins": [], "themes": []}}):
        updates = normalize_updates(payload)
        assert updates.count["total"] == 0
    assert normalize_updates({}) == normalize_updates({})


def test_updates_count():
    updates = normalize_updates({
        "updates": {
            "wordpress": {"update_available": True, "current_version": "6.4", "new_version": "6.5"},
            "plugins": [{"plugin_file": "a/a.php", "current_version": "1", "new_version": "2"}],
            "themes": [{"slug": "t", "current_version": "1", "new_version": "2"}],
        }
    })
    assert updates.count == {"total": 3, "core": 1, "plugins": 1, "themes": 1}
    assert updates.plugins[0].identifier == "a/a.php"
    assert updates.themes[0].identifier == "t"


def test_normalize_status_enhanced_and_flat():
    enhanced = normalize_status({
        "success": True,
        "site_info": {"wordpress_version": "6.4.2", "php_version": "8.1", "ssl_enabled": False},
        "plugin_count": {"total": 12, "active": 9, "inactive": 3},
        "maintenance_mode": True,
        "plugin_version": "3.2.0",
    }, "http://example.com")
    assert enhanced.wordpress_version == "6.4.2"
    assert enhanced.plugins_count == 12
    assert enhanced.active_plugins_count == 9
    assert enhanced.maintenance_mode is True
    assert enhanced.ssl_enabled is False

    flat = normalize_status({"wp_version": "6.3", "php_version": "8.0", "plugins_count": 4})
    assert flat.wordpress_version == "6.3"
    assert flat.plugins_count == 4


def test_detect_ssl_sources():
    assert detect_ssl({"ssl_enabled": "1"})
    assert detect_ssl({}, "https://example.com")
    assert detect_ssl({"home_url": "https://example.com"}, "http://example.com")
    assert detect_ssl({"force_ssl_admin": True})
    assert not detect_ssl({"site_url": "http://example.com"}, "http://example.com")


def test_normalize_maintenance():
    assert normalize_maintenance({"enabled": True}).enabled is True
    assert normalize_maintenance({"maintenance_mode": "0"}).enabled is False
    assert normalize_maintenance({"status": "enabled", "message": "Back soon"}).message == "Back soon"


def test_interpret_update_response():
    assert interpret_update_response({"success": True}, "a/a.php")[0] is True
    assert interpret_update_response({"status": "completed", "message": "done"}, "a/a.php") == (True, "done", None)
    ok, message, _ = interpret_update_response({"success": False, "message": "Download failed"}, "a/a.php")
    assert not ok and message == "Download failed"
    assert interpret_update_response({"error": "boom"}, "a/a.php")[0] is False
    assert interpret_update_response({}, "a/a.php")[0] is True


def test_interpret_update_response_picks_item_from_results():
    payload = {"success": True, "results": [
        {"type": "plugin", "item": "a/a.php", "status": "completed", "message": "ok"},
        {"type": "plugin", "item": "b/b.php", "status": "failed", "message": "no package"},
        {"type": "wordpress", "status": "completed", "message": "core ok"},
    ]}
    assert interpret_update_response(payload, "a/a.php")[0] is True
    assert interpret_update_response(payload, "b/b.php") == (False, "no package", None)
    assert interpret_update_response(payload, "a")[0] is True
    assert interpret_update_response(payload, "wordpress", "wordpress")[1] == "core ok"


def test_non_string_fields_are_coerced():
    theme = normalize_theme({"stylesheet": "astra", "version": 4, "author": 12, "screenshot": None})
    assert theme.version == "4"
    assert theme.author == "12"
    user = normalize_user({"ID": "7", "user_login": "editor", "first_name": 0, "user_registered": 20230101})
    assert user.id == 7
    assert user.registered_date == "20230101"
    assert normalize_maintenance({"enabled": "1", "message": 503}).message == "503"


def test_optimization_info_flat_snake_case():
    info = normalize_optimization_info({"data": {
        "post_revisions_count": "9",
        "database_size": "12 MB",
        "database_tables": 14,
        "spam_comments": 3,
        "last_optimized": "2024-05-01T10:00:00Z",
    }})
    assert info.post_revisions == 9
    assert info.database_size == "12 MB"
    assert info.database_tables == 14
    assert info.spam_comments == 3
    assert info.last_optimized == "2024-05-01T10:00:00Z"
    assert normalize_optimization_info(None).post_revisions == 0


def test_optimization_result_reports_failure():
    result = normalize_optimization_result({"success": False, "message": "Table is locked"}, "database")
    assert result.success is False
    assert result.message == "Table is locked"
    assert result.action == "database"
