"""Fixtures for API unit tests: in-memory stores, seeded RBAC, AsyncClient, user helpers."""

from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient

from kindling.config.settings import AppSettings
from kindling.infrastructure.memory.audit_repository_memory import InMemoryAuditRepository
from kindling.infrastructure.memory.security_repository_memory import InMemorySecurityRepository
from kindling.main import create_app
from kindling.security.seed import seed_defaults

PASSWORD = "correct-horse-battery"


@pytest.fixture
def settings():
    return AppSettings(
        _env_file=None,
        environment="test",
        database_url="memory://",
        max_failed_login_attempts=3,
        audit_retry_base_delay_seconds=0,
    )


@pytest.fixture
def audit_repository():
    return InMemoryAuditRepository()


@pytest.fixture
def security_repository():
    return InMemorySecurityRepository()


@pytest.fixture
async def app(settings, audit_repository, security_repository):
    """Fresh app per test; the lifespan is not run by ASGITransport, so seed here."""
    application = create_app(
        settings,
        audit_repository=audit_repository,
        security_repository=security_repository,
    )
    await seed_defaults(application.state.rbac)
    yield application
    await application.state.audit_dispatcher.stop()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def audit_records(app, audit_repository):
    """Wait for background audit writes, then return everything stored."""

    async def flush():
        await app.state.audit_dispatcher.join()
        return audit_repository.records

    return flush


@pytest.fixture
def make_user(app):
    """Create an active user, optionally holding one of the seeded roles."""

    async def factory(email: str, role: Optional[str] = None, password: str = PASSWORD):
        accounts = app.state.accounts
        rbac = app.state.rbac
        _, token = await accounts.register(email, password)
        user = await accounts.verify_email(token.token)
        if role is not None:
            roles = {r.name: r for r in await rbac.list_roles()}
            await rbac.assign_role(user.id, roles[role].id)
        return user

    return factory


@pytest.fixture
def login(client):
    """Log in over HTTP and return Authorization headers."""

    async def do_login(email: str, password: str = PASSWORD):
        r = await client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}

    return do_login
