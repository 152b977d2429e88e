"""Shared fixtures: cheap bcrypt rounds so password hashing does not dominate test time."""

import pytest

from kindling.security.passwords import pwd_context


@pytest.fixture(autouse=True, scope="session")
def fast_password_hashing():
    pwd_context.update(bcrypt__rounds=4)
    yield
