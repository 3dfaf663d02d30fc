# conftest.py

import time
from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from licensegate.config.settings import Settings
from licensegate.context import build_context
from licensegate.core.catalog import Outcome
from licensegate.core.roles import Role
from licensegate.main import create_app
from licensegate.models import License, LicenseProduct, User


class FakeClock:
    """Controllable epoch-seconds clock, starting at the real current time"""

    def __init__(self, start: Optional[int] = None):
        self.now = int(time.time()) if start is None else start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


class Factory:
    """Seeds rows through the catalog, each call in its own short session"""

    def __init__(self, ctx):
        self.ctx = ctx

    def user(self, email: str = "user@example.com", password: str = "password123", role: Role = Role.USER) -> str:
        with self.ctx.session() as db:
            result = self.ctx.catalog.register(db, email, password, role)
            assert result.ok, result.outcome
            return result.value.id

    def product(self, product_id: str = "app") -> str:
        with self.ctx.session() as db:
            assert self.ctx.catalog.create_product(db, product_id) is Outcome.OK
        return product_id

    def license(
        self,
        products: Optional[Dict[str, int]] = None,
        user_id: Optional[str] = None,
        started_at: Optional[int] = None,
        hwid: str = "",
    ) -> str:
        with self.ctx.session() as db:
            result = self.ctx.catalog.generate_license(db, products or {})
            assert result.ok, result.outcome
            key = result.value
            if started_at is not None:
                db.execute(
                    update(LicenseProduct).where(LicenseProduct.license_key == key).values(started_at=started_at)
                )
            if hwid:
                db.get(License, key).hwid = hwid
            if user_id is not None:
                db.get(User, user_id).license_key = key
            db.commit()
        return key

    def redemption_keys(self, product_id: str, duration: int, count: int = 1):
        with self.ctx.session() as db:
            result = self.ctx.catalog.generate_redemption_keys(db, product_id, duration, count)
            assert result.ok, result.outcome
            return result.value.keys

    def grant(self, license_key: str, product_id: str):
        """(duration, started_at) of one grant, or None"""
        with self.ctx.session() as db:
            row = db.get(LicenseProduct, (license_key, product_id))
            return None if row is None else (row.duration, row.started_at)

    def user_row(self, user_id: str) -> dict:
        with self.ctx.session() as db:
            user = db.get(User, user_id)
            return {"role": user.role, "banned": user.banned, "license_key": user.license_key}

    def token(self, user_id: str, role: Role = Role.USER) -> str:
        return self.ctx.codec.issue(user_id, role)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'licensegate.db'}",
        CACHE_URL="memory://",
        SECRET_KEY="test-secret-key",
        BCRYPT_ROUNDS=4,
        AUDIT_LOG_CAPACITY=500,
        ENVIRONMENT="test",
    )


@pytest.fixture
def ctx(test_settings, clock):
    """Application context on a fresh SQLite file"""
    context = build_context(test_settings, clock=clock)
    context.init_db()
    yield context
    context.dispose()


@pytest.fixture
def db(ctx):
    session = ctx.session()
    yield session
    session.close()


@pytest.fixture
def factory(ctx):
    return Factory(ctx)


@pytest.fixture
def client(ctx):
    app = create_app(context=ctx)
    with TestClient(app) as test_client:
        yield test_client


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_header():
    return bearer
