"""
Root test configuration and fixtures.

Provides:
- db_engine / db_session: fresh SQLite in-memory schema per test
- encryption_key: TOKEN_ENCRYPTION_KEY set for the test
- oauth_settings: fully configured provider settings
- verifier: static identity verifier (token -> user id)
- provider_stub / http_client: httpx.MockTransport standing in for Google
  and Meta endpoints
- clock: controllable UTC clock
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generator, List, Optional

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from adlink.auth.identity import IdentityVerifier
from adlink.config.oauth_settings import GoogleAdsAppConfig, MetaAppConfig, OAuthSettings
from adlink.platform.errors import UnauthorizedError

# Set test environment
os.environ.setdefault("ENV", "test")

TEST_ENCRYPTION_KEY = "000102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f"

VALID_TOKENS = {
    "valid-token-u1": "u1",
    "valid-token-u2": "u2",
}


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db_engine():
    """SQLite in-memory engine with all tables created."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from adlink.db_base import Base
    import adlink.models  # noqa: F401 - register all tables

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture(autouse=True)
def encryption_key(monkeypatch):
    """Set up encryption key for testing."""
    monkeypatch.setenv("TOKEN_ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    return TEST_ENCRYPTION_KEY


@pytest.fixture
def oauth_settings() -> OAuthSettings:
    return OAuthSettings(
        google=GoogleAdsAppConfig(
            client_id="google-client-id",
            client_secret="google-client-secret",
            developer_token="google-dev-token",
        ),
        meta=MetaAppConfig(app_id="meta-app-id", app_secret="meta-app-secret"),
        app_base_url="https://app.example.com",
    )


class StaticIdentityVerifier(IdentityVerifier):
    """Accepts only the tokens in VALID_TOKENS."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self.tokens = dict(VALID_TOKENS if tokens is None else tokens)
        self.calls = 0

    def verify(self, token: str) -> str:
        self.calls += 1
        try:
            return self.tokens[token]
        except KeyError:
            raise UnauthorizedError("Unknown test token")


@pytest.fixture
def verifier() -> StaticIdentityVerifier:
    return StaticIdentityVerifier()


class FrozenClock:
    """Callable UTC clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# =============================================================================
# Provider HTTP stubs
# =============================================================================

class ProviderStub:
    """
    httpx.MockTransport handler with per-endpoint canned responses.

    A route matches on method, URL without query string and a subset of
    query/form parameters. The first matching route answers.
    """

    def __init__(self):
        self.routes: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        url: str,
        json: Any = None,
        status_code: int = 200,
        params: Optional[Dict[str, str]] = None,
        exc: Optional[Exception] = None,
        content: Optional[bytes] = None,
    ) -> None:
        self.routes.append({
            "method": method.upper(),
            "url": url,
            "json": json,
            "status_code": status_code,
            "params": params or {},
            "exc": exc,
            "content": content,
        })

    def requests_to(self, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url).split("?")[0] == url]

    @staticmethod
    def _request_params(request: httpx.Request) -> Dict[str, str]:
        values = dict(request.url.params)
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/x-www-form-urlencoded"):
            values.update(httpx.QueryParams(request.content.decode()))
        return values

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        base_url = str(request.url).split("?")[0]
        params = self._request_params(request)

        for route in self.routes:
            if route["method"] != request.method or route["url"] != base_url:
                continue
            if any(params.get(k) != v for k, v in route["params"].items()):
                continue
            if route["exc"] is not None:
                raise route["exc"]
            if route["content"] is not None:
                return httpx.Response(route["status_code"], content=route["content"])
            return httpx.Response(route["status_code"], json=route["json"])

        raise AssertionError(f"Unexpected request: {request.method} {base_url}")


@pytest.fixture
def provider_stub() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def http_client(provider_stub) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(provider_stub))


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
