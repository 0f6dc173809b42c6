"""
End-to-end tests for the auth routes through the FastAPI app.
"""

from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from luna.api.app import create_app
from luna.auth.cookies import SESSION_COOKIE, STATE_COOKIE
from luna.core.errors import ConfigurationError
from luna.storage.local import InMemoryIdentityStorage, InMemorySessionStorage


class FailingSessionStorage(InMemorySessionStorage):
    async def save(self, session):
        raise ConnectionError("store unreachable")


class UnreachableIdentityStorage(InMemoryIdentityStorage):
    async def find_by_external_id(self, external_id):
        raise ConnectionError("users collection unreachable")


class UndeletableSessionStorage(InMemorySessionStorage):
    async def delete(self, session_id):
        raise ConnectionError("store unreachable")


@pytest.fixture
def client(settings, storage, bus, google):
    app = create_app(settings=settings, storage=storage, event_bus=bus, oauth_transport=google.transport)
    with TestClient(app, follow_redirects=False) as client:
        yield client


@pytest.fixture
def anonymous_client(anonymous_settings, storage, bus):
    app = create_app(settings=anonymous_settings, storage=storage, event_bus=bus)
    with TestClient(app, follow_redirects=False) as client:
        yield client


def login(client: TestClient, code: str = "code-1"):
    """Run the full redirect dance and return the callback response."""
    start = client.get("/auth/google")
    assert start.status_code == 302
    state = parse_qs(urlparse(start.headers["location"]).query)["state"][0]
    return client.get("/auth/google/callback", params={"code": code, "state": state})


# =============================================================================
# Login flow
# =============================================================================


class TestLoginFlow:
    def test_login_page(self, client):
        response = client.get("/login")
        assert response.status_code == 200
        assert "/auth/google" in response.text

    def test_login_page_shows_error(self, client):
        response = client.get("/login", params={"error": "auth_failed"})
        assert "failed" in response.text

    def test_start_redirects_to_google(self, client):
        response = client.get("/auth/google")

        assert response.status_code == 302
        assert response.headers["location"].startswith("https://accounts.google.com/")
        assert STATE_COOKIE in response.cookies

    def test_callback_creates_identity_and_session(self, client, storage):
        response = login(client)

        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert SESSION_COOKIE in client.cookies

        identity = storage.identities._by_id[next(iter(storage.identities._by_id))]
        assert identity.external_id == "g-123"
        assert identity.email == "a@b.com"

        status = client.get("/api/auth/status").json()
        assert status["authenticated"] is True
        assert status["mode"] == "oauth"
        assert status["user"] == {
            "id": identity.id,
            "email": "a@b.com",
            "name": "Ada",
            "picture": "https://example.com/ada.png",
        }

    def test_session_cookie_attributes(self, client):
        response = login(client)

        set_cookie = [
            h for h in response.headers.get_list("set-cookie") if h.startswith(f"{SESSION_COOKIE}=")
        ][0]
        attributes = {
            part.strip().split("=")[0].lower(): part.strip().partition("=")[2].lower()
            for part in set_cookie.split(";")[1:]
        }
        assert "httponly" in attributes
        assert attributes["samesite"] == "lax"
        assert "domain" not in attributes
        assert "secure" not in attributes  # plain http in development

    def test_repeat_login_single_identity(self, client, storage):
        login(client)
        client.post("/auth/logout")
        login(client, code="code-2")

        assert len(storage.identities._by_id) == 1

    def test_relogin_replaces_previous_session(self, client, storage):
        login(client)
        first = set(storage.sessions._sessions)
        login(client, code="code-2")
        second = set(storage.sessions._sessions)

        assert len(second) == 1
        assert first.isdisjoint(second)

    def test_me_after_login(self, client):
        login(client)

        me = client.get("/api/auth/me")
        assert me.status_code == 200
        body = me.json()
        assert body["email"] == "a@b.com"
        assert body["createdAt"]
        assert body["lastLogin"]

    def test_dashboard_after_login(self, client):
        login(client)
        response = client.get("/")
        assert response.status_code == 200
        assert "Ada" in response.text

    def test_login_page_redirects_when_signed_in(self, client):
        login(client)
        response = client.get("/login")
        assert response.status_code == 302
        assert response.headers["location"] == "/"


# =============================================================================
# Callback failures
# =============================================================================


class TestCallbackFailures:
    def test_state_mismatch(self, client, storage):
        client.get("/auth/google")
        response = client.get("/auth/google/callback", params={"code": "c", "state": "forged"})

        assert response.headers["location"] == "/login?error=auth_failed"
        assert not storage.identities._by_id

    def test_missing_state_cookie(self, client):
        response = client.get("/auth/google/callback", params={"code": "c", "state": "s"})
        assert response.headers["location"] == "/login?error=auth_failed"

    def test_provider_error(self, client):
        client.get("/auth/google")
        response = client.get("/auth/google/callback", params={"error": "access_denied"})
        assert response.headers["location"] == "/login?error=auth_failed"

    def test_token_exchange_rejected(self, client, google):
        google.token_status = 401
        response = login(client)
        assert response.headers["location"] == "/login?error=auth_failed"

    def test_missing_email(self, client, google, storage):
        google.profile.pop("email")
        response = login(client)

        assert response.headers["location"] == "/login?error=auth_failed"
        assert not storage.identities._by_id
        assert SESSION_COOKIE not in client.cookies

    def test_session_flush_failure(self, settings, storage, bus, google):
        storage.sessions = FailingSessionStorage()
        app = create_app(settings=settings, storage=storage, event_bus=bus, oauth_transport=google.transport)

        with TestClient(app, follow_redirects=False) as client:
            response = login(client)

        assert response.headers["location"] == "/login?error=session_failed"
        assert SESSION_COOKIE not in client.cookies
        assert bus.get_history("session.save_failed")

    def test_flush_failure_reported_once(self, settings, storage, bus, google, monkeypatch):
        reports = []
        monkeypatch.setattr(
            "luna.auth.routes.capture_exception", lambda *a, **kw: reports.append(a)
        )
        monkeypatch.setattr(
            "luna.auth.diagnostics.capture_message", lambda *a, **kw: reports.append(a)
        )
        storage.sessions = FailingSessionStorage()
        app = create_app(settings=settings, storage=storage, event_bus=bus, oauth_transport=google.transport)

        with TestClient(app, follow_redirects=False) as client:
            login(client)

        assert len(reports) == 1
        assert not bus.get_history("session.created")

    def test_identity_store_fault(self, settings, storage, bus, google):
        storage.identities = UnreachableIdentityStorage()
        app = create_app(settings=settings, storage=storage, event_bus=bus, oauth_transport=google.transport)

        with TestClient(app, follow_redirects=False) as client:
            response = login(client)

        assert response.status_code == 302
        assert response.headers["location"] == "/login?error=auth_failed"
        assert SESSION_COOKIE not in client.cookies

    def test_malformed_token_payload(self, client, google, storage):
        google.tokens = {"access_token": "at", "expires_in": "soon"}

        response = login(client)

        assert response.status_code == 302
        assert response.headers["location"] == "/login?error=auth_failed"
        assert not storage.identities._by_id

    def test_previous_session_cleanup_fault(self, settings, storage, bus, google):
        storage.sessions = UndeletableSessionStorage()
        app = create_app(settings=settings, storage=storage, event_bus=bus, oauth_transport=google.transport)

        with TestClient(app, follow_redirects=False) as client:
            login(client)
            response = login(client, code="code-2")

        assert response.status_code == 302
        assert response.headers["location"] == "/login?error=session_failed"


# =============================================================================
# Denial and logout
# =============================================================================


class TestDenied:
    def test_api_route_gets_401_body(self, client):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        body = response.json()
        assert body["redirectTo"] == "/login"
        assert body["error"]
        assert body["message"]

    def test_browser_route_redirects(self, client):
        response = client.get("/")
        assert response.status_code == 302
        assert response.headers["location"] == "/login"

    def test_status_never_401(self, client):
        response = client.get("/api/auth/status")
        assert response.status_code == 200
        assert response.json() == {"authenticated": False, "mode": "oauth"}

    def test_garbage_cookie(self, client):
        client.cookies.set(SESSION_COOKIE, "not-a-session")
        assert client.get("/api/auth/me").status_code == 401


class TestLogout:
    def test_post_logout(self, client, storage):
        login(client)
        old_cookie = client.cookies.get(SESSION_COOKIE)

        response = client.post("/auth/logout")

        assert response.json() == {"success": True, "message": "Logged out successfully"}
        assert not storage.sessions._sessions

        # The browser may still replay the old cookie; it must not sign anyone in.
        client.cookies.set(SESSION_COOKIE, old_cookie)
        assert client.get("/api/auth/status").json()["authenticated"] is False
        assert client.get("/api/auth/me").status_code == 401

    def test_get_logout_redirects_home(self, client):
        login(client)

        response = client.get("/auth/logout")

        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert client.get("/api/auth/me").status_code == 401

    def test_logout_without_session(self, client):
        response = client.post("/auth/logout")
        assert response.json()["success"] is True


# =============================================================================
# Anonymous mode
# =============================================================================


class TestAnonymousMode:
    def test_me_is_default_user(self, anonymous_client):
        response = anonymous_client.get("/api/auth/me")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "default-user-id"
        assert body["name"] == "Default User"

    def test_dashboard_open(self, anonymous_client):
        assert anonymous_client.get("/").status_code == 200

    def test_status(self, anonymous_client):
        assert anonymous_client.get("/api/auth/status").json() == {
            "authenticated": False,
            "mode": "anonymous",
        }

    def test_oauth_routes_absent(self, anonymous_client):
        assert anonymous_client.get("/auth/google").status_code == 404
        assert anonymous_client.get("/auth/google/callback").status_code == 404

    def test_login_redirects_home(self, anonymous_client):
        response = anonymous_client.get("/login")
        assert response.status_code == 302
        assert response.headers["location"] == "/"


# =============================================================================
# Health and startup
# =============================================================================


class TestHealth:
    def test_health(self, client):
        body = client.get("/api/health").json()

        assert body["status"] == "ok"
        assert body["database"] == "memory"
        assert body["connected"] is True
        assert body["authMode"] == "oauth"
        assert body["authenticated"] is False

    def test_health_after_login(self, client):
        login(client)
        assert client.get("/api/health").json()["authenticated"] is True


class TestStartup:
    def test_half_configured_provider_refuses_to_start(self, storage, settings_factory):
        settings = settings_factory(google_client_secret="")
        app = create_app(settings=settings, storage=storage)

        with pytest.raises(ConfigurationError):
            with TestClient(app):
                pass

    def test_default_secret_refused_with_provider(self, storage, settings_factory):
        settings = settings_factory(session_secret="luna-secret-key-change-in-production")
        app = create_app(settings=settings, storage=storage)

        with pytest.raises(ConfigurationError):
            with TestClient(app):
                pass

    def test_storage_opened_from_settings(self, settings, google):
        app = create_app(settings=settings, oauth_transport=google.transport)

        with TestClient(app, follow_redirects=False) as client:
            body = client.get("/api/health").json()
            assert body["database"] == "memory"
            assert login(client).headers["location"] == "/"
