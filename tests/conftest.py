"""
Shared fixtures: settings, in-memory storage and a fake Google endpoint.
"""

import httpx
import pytest

from luna.config import Settings
from luna.core.events import EventBus
from luna.integrations.oauth import GoogleOAuth
from luna.storage import create_local_storage


class FakeGoogle:
    """
    Stands in for Google's token and userinfo endpoints.

    Tests tweak `profile`, `tokens` or `token_status` before a login.
    """

    def __init__(self):
        self.profile = {
            "id": "g-123",
            "email": "a@b.com",
            "name": "Ada",
            "picture": "https://example.com/ada.png",
        }
        self.tokens = {"access_token": "at-1", "refresh_token": "rt-1", "expires_in": 3600}
        self.token_status = 200
        self.timeout = False
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.timeout:
            raise httpx.ReadTimeout("timed out", request=request)
        if request.url.path == httpx.URL(GoogleOAuth.TOKEN_URL).path:
            return httpx.Response(self.token_status, json=self.tokens)
        if request.url.path == httpx.URL(GoogleOAuth.USERINFO_URL).path:
            return httpx.Response(200, json=self.profile)
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_settings(**overrides) -> Settings:
    values = {
        "environment": "development",
        "base_url": "http://testserver",
        "storage_backend": "memory",
        "session_secret": "test-secret",
        "google_client_id": "client-id",
        "google_client_secret": "client-secret",
        "sentry_dsn": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings_factory():
    """Build settings with overrides on top of the test defaults."""
    return make_settings


@pytest.fixture
def settings():
    """Settings with Google configured."""
    return make_settings()


@pytest.fixture
def anonymous_settings():
    """Settings without provider credentials."""
    return make_settings(google_client_id="", google_client_secret="")


@pytest.fixture
def storage():
    return create_local_storage()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def google():
    return FakeGoogle()
