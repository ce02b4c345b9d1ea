import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["WRM_MIN_REQUEST_INTERVAL"] = "0"
os.environ["WRM_RATE_LIMIT_WAIT"] = "0"
os.environ["WRM_VERIFY_WAIT"] = "0"

import json

import httpx
import pytest
from fastapi.testclient import TestClient
from redis.exceptions import LockNotOwnedError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from webcare.api import deps
from webcare.core.redis import get_redis
from webcare.core.security import create_access_token, hash_password
from webcare.db.base import Base
from webcare.db.session import get_db
from webcare.main import app
from webcare.models.client import Client
from webcare.models.user import User
from webcare.models.website import Website
from webcare.services.wp_remote_manager import WPRemoteManagerClient

SECURE = "/wp-json/wrms/v1"
LEGACY = "/wp-json/wrm/v1"

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def no_route():
    return httpx.Response(404, json={"code": "rest_no_route", "message": "No route was found", "data": {"status": 404}})


class FakeWordPress:
    """A WordPress site with the Remote Manager plugin, served over MockTransport.

    Routes map ``(method, path)`` to a JSON body, an ``httpx.Response`` or a
    callable taking the request. Only namespaces in ``namespaces`` answer.
    """

    def __init__(self):
        self.namespaces = (SECURE, LEGACY)
        self.routes = {}
        self.requests = []
        self.api_key = "test-key"

    def route(self, method, path, response):
        self.routes[(method, path)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        namespace = next((ns for ns in self.namespaces if request.url.path.startswith(ns + "/")), None)
        if namespace is None:
            return no_route()
        key = request.headers.get("X-WRMS-API-Key") or request.headers.get("X-WRM-API-Key")
        if key != self.api_key:
            return httpx.Response(403, json={"code": "invalid_api_key", "message": "Invalid API key"})
        response = self.routes.get((request.method, request.url.path[len(namespace):]))
        if response is None:
            return no_route()
        if callable(response):
            response = response(request)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def transport(self):
        return httpx.MockTransport(self.handler)

    def client(self, api_key="test-key", **kwargs):
        return WPRemoteManagerClient(
            "https://example.com",
            api_key,
            min_request_interval=0,
            rate_limit_wait=0,
            transport=self.transport(),
            **kwargs,
        )

    def calls(self, path=None):
        """(method, path-without-namespace) of every request, optionally filtered."""
        result = []
        for request in self.requests:
            p = request.url.path
            for ns in (SECURE, LEGACY):
                if p.startswith(ns):
                    p = p[len(ns):]
            if path is None or p == path:
                result.append((request.method, p))
        return result

    def standard(self):
        """Register a healthy site with one plugin update pending."""
        self.plugin_versions = {
            "contact-form-7/wp-contact-form-7.php": "5.8",
            "akismet/akismet.php": "5.3",
        }
        self.theme_versions = {"twentytwentyfour": "1.0"}
        self.route("GET", "/status", {
            "success": True,
            "site_info": {
                "wordpress_version": "6.4.2",
                "php_version": "8.1.27",
                "mysql_version": "8.0.35",
                "memory_limit": "256M",
                "max_execution_time": "30",
                "ssl_enabled": True,
            },
            "theme_info": {"name": "Twenty Twenty-Four", "version": "1.0"},
            "plugin_count": {"total": 2, "active": 2, "inactive": 0},
            "maintenance_mode": False,
            "plugin_version": "3.2.0",
        })
        self.route("GET", "/plugins", lambda request: {
            "success": True,
            "plugins": [
                {"name": name.split("/")[0], "plugin_file": name, "slug": name.split("/")[0],
                 "version": version, "active": True}
                for name, version in self.plugin_versions.items()
            ],
        })
        self.route("GET", "/themes", lambda request: {
            "success": True,
            "themes": [
                {"name": "Twenty Twenty-Four", "slug": slug, "version": version, "active": True}
                for slug, version in self.theme_versions.items()
            ],
        })
        self.route("GET", "/updates", {
            "success": True,
            "updates": {
                "wordpress": {"update_available": False, "current_version": "6.4.2"},
                "plugins": [{"name": "contact-form-7", "new_version": "5.9"}],
                "themes": [],
            },
        })
        self.route("GET", "/users", {"success": True, "users": [
            {"id": "1", "username": "admin", "email": "admin@example.com", "roles": ["administrator"]},
        ]})
        self.route("POST", "/maintenance", lambda request: {"success": True})

        def update_plugin(request):
            plugin = json.loads(request.content)["plugin"]
            for name in self.plugin_versions:
                if plugin in (name, name.split("/")[0]):
                    self.plugin_versions[name] = "5.9"
            return {"type": "plugin", "item": plugin, "status": "completed", "message": "Plugin updated successfully"}

        self.route("POST", "/update-plugin", update_plugin)
        return self


@pytest.fixture
def site():
    return FakeWordPress()


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


class FakeLock:
    def __init__(self, store, name):
        self.store = store
        self.name = name

    def acquire(self, blocking=False):
        if self.name in self.store.held:
            return False
        self.store.held.add(self.name)
        return True

    def release(self):
        if self.store.expire_on_release:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")
        self.store.held.discard(self.name)


class FakeRedis:
    def __init__(self):
        self.held = set()
        self.expire_on_release = False

    def lock(self, name, timeout=None, blocking=False):
        return FakeLock(self, name)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def api(db, site, fake_redis):
    def override_get_db():
        yield db

    def override_factory():
        return lambda website: WPRemoteManagerClient(
            website.url,
            website.wrm_api_key,
            min_request_interval=0,
            rate_limit_wait=0,
            transport=site.transport(),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_client_factory] = override_factory
    app.dependency_overrides[get_redis] = lambda: fake_redis
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    user = User(email="owner@agency.test", hashed_password=hash_password("s3cret-pass"), first_name="Sam")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def website(db, user):
    client = Client(user_id=user.id, name="Acme", email="hello@acme.test")
    db.add(client)
    db.commit()
    website = Website(client_id=client.id, name="Acme site", url="https://example.com", wrm_api_key="test-key")
    db.add(website)
    db.commit()
    db.refresh(website)
    return website
