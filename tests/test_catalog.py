"""
Tests for catalog administration: products, licenses, users, bans, sessions
"""
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from licensegate import store
from licensegate.core.catalog import Outcome
from licensegate.core.entitlement import UNBOUNDED_SECONDS
from licensegate.core.errors import CredentialRevoked, StoreUnavailable
from licensegate.core.roles import Role

DAY = 24 * 60 * 60


def failing_commit(db, monkeypatch):
    """Make every commit on db fail as if the disk went away"""
    error = OperationalError("COMMIT", {}, Exception("disk I/O error"))
    monkeypatch.setattr(db, "commit", Mock(side_effect=error))


@pytest.fixture
def catalog(ctx):
    return ctx.catalog


@pytest.fixture
def admin(ctx, factory):
    user_id = factory.user("admin@example.com", role=Role.ADMIN)
    return ctx.codec.claims_for(user_id, Role.ADMIN)


class TestProducts:
    def test_create_twice(self, catalog, db):
        assert catalog.create_product(db, "app") is Outcome.OK
        assert catalog.create_product(db, "app") is Outcome.ALREADY_EXISTS
        assert [p.id for p in catalog.list_products(db)] == ["app"]

    def test_delete_removes_grants_and_keys(self, catalog, db, factory):
        factory.product("app")
        key = factory.license({"app": DAY})
        redemption_key = factory.redemption_keys("app", DAY)[0]

        assert catalog.delete_product(db, "app") is Outcome.OK
        assert factory.grant(key, "app") is None
        assert not store.key_in_use(db, redemption_key)
        db.rollback()
        assert catalog.delete_product(db, "app") is Outcome.INVALID_PRODUCT

    def test_freeze_outcomes(self, catalog, db, factory):
        factory.product("app")
        assert catalog.freeze_product(db, "app") is Outcome.OK
        assert catalog.freeze_product(db, "app") is Outcome.ALREADY_FROZEN
        assert catalog.freeze_product(db, "nope") is Outcome.INVALID_PRODUCT
        assert catalog.unfreeze_product(db, "nope") is Outcome.INVALID_PRODUCT

    def test_unfreeze_shifts_every_holder_once(self, catalog, db, factory, clock):
        factory.product("app")
        first = factory.license({"app": DAY}, started_at=clock() - 100)
        second = factory.license({"app": DAY}, started_at=clock() - 500)

        catalog.freeze_product(db, "app")
        clock.advance(3600)
        assert catalog.unfreeze_product(db, "app") is Outcome.OK
        assert catalog.unfreeze_product(db, "app") is Outcome.ALREADY_UNFROZEN

        assert factory.grant(first, "app")[1] == clock() - 3600 - 100 + 3600
        assert factory.grant(second, "app")[1] == clock() - 3600 - 500 + 3600

    def test_stale_unfreeze_does_not_apply(self, db, factory, clock):
        factory.product("app")
        assert store.freeze_if_unfrozen(db, "app", clock())
        assert not store.unfreeze_if_frozen_at(db, "app", clock() - 1)
        assert store.unfreeze_if_frozen_at(db, "app", clock())
        db.rollback()

    def test_compensate(self, catalog, db, factory):
        factory.product("app")
        factory.product("other")
        first = factory.license({"app": DAY})
        second = factory.license({"app": DAY, "other": DAY})

        result = catalog.compensate_product(db, "app", 600)
        assert result.ok
        assert result.value == 2
        assert factory.grant(first, "app")[0] == DAY + 600
        assert factory.grant(second, "other")[0] == DAY

    def test_compensate_rejects_bad_input(self, catalog, db, factory):
        factory.product("app")
        assert catalog.compensate_product(db, "app", 0).outcome is Outcome.INVALID_ARGUMENT
        assert catalog.compensate_product(db, "nope", 60).outcome is Outcome.INVALID_PRODUCT


class TestStoreFailures:
    def test_delete_product_reports_store_error(self, catalog, db, factory, monkeypatch):
        factory.product("app")
        failing_commit(db, monkeypatch)

        assert catalog.delete_product(db, "app") is Outcome.STORE_ERROR
        assert [p.id for p in catalog.list_products(db)] == ["app"]

    def test_generate_license_reports_store_error(self, catalog, db, factory, monkeypatch):
        factory.product("app")
        failing_commit(db, monkeypatch)

        assert catalog.generate_license(db, {"app": DAY}).outcome is Outcome.STORE_ERROR
        assert catalog.list_licenses(db) == []

    def test_generate_keys_reports_store_error(self, catalog, db, factory, monkeypatch):
        factory.product("app")
        failing_commit(db, monkeypatch)

        assert catalog.generate_redemption_keys(db, "app", 60, 3).outcome is Outcome.STORE_ERROR


class TestLicenses:
    def test_generate_license(self, catalog, db, factory, clock):
        factory.product("app")
        result = catalog.generate_license(db, {"app": DAY})

        assert result.ok
        assert factory.grant(result.value, "app") == (DAY, clock())
        assert store.get_license(db, result.value).hwid == ""

    def test_generate_license_with_unknown_product(self, catalog, db, factory):
        factory.product("app")
        result = catalog.generate_license(db, {"app": DAY, "nope": DAY})
        assert result.outcome is Outcome.ONE_OR_MORE_INVALID_PRODUCT
        assert catalog.list_licenses(db) == []

    def test_generate_license_rejects_non_positive_duration(self, catalog, db, factory):
        factory.product("app")
        assert catalog.generate_license(db, {"app": 0}).outcome is Outcome.INVALID_ARGUMENT

    @pytest.mark.parametrize("duration, count", [(0, 1), (60, 0), (60, 1001)])
    def test_redemption_key_arguments(self, catalog, db, factory, duration, count):
        factory.product("app")
        assert catalog.generate_redemption_keys(db, "app", duration, count).outcome is Outcome.INVALID_ARGUMENT

    def test_redemption_keys_for_unknown_product(self, catalog, db):
        assert catalog.generate_redemption_keys(db, "nope", 60, 1).outcome is Outcome.INVALID_PRODUCT

    def test_add_products_restarts_window(self, catalog, db, factory, clock):
        factory.product("app")
        factory.product("other")
        key = factory.license({"app": DAY}, started_at=clock() - DAY)

        assert catalog.add_products_to_license(db, key, {"app": 2 * DAY, "other": DAY}) is Outcome.OK
        assert factory.grant(key, "app") == (2 * DAY, clock())
        assert factory.grant(key, "other") == (DAY, clock())

    def test_add_products_validation(self, catalog, db, factory):
        factory.product("app")
        key = factory.license()
        assert catalog.add_products_to_license(db, "NO-SUCH", {"app": DAY}) is Outcome.INVALID_LICENSE
        assert catalog.add_products_to_license(db, key, {"nope": DAY}) is Outcome.ONE_OR_MORE_INVALID_PRODUCT

    def test_remove_products(self, catalog, db, factory):
        factory.product("app")
        key = factory.license({"app": DAY})

        assert catalog.remove_products_from_license(db, key, ["app"]) is Outcome.OK
        assert factory.grant(key, "app") is None
        assert catalog.remove_products_from_license(db, key, ["nope"]) is Outcome.ONE_OR_MORE_INVALID_PRODUCT

    def test_license_grants_report_remaining_time(self, catalog, db, factory, clock):
        factory.product("app")
        key = factory.license({"app": DAY}, started_at=clock() - 600)

        [grant] = catalog.license_grants(db, key)
        assert grant.remaining_seconds == DAY - 600
        assert not grant.expired
        assert not grant.frozen
        assert catalog.license_product_info(db, key, "nope") is None

    def test_reset_hwid(self, catalog, db, factory):
        key = factory.license(hwid="H1")
        assert catalog.reset_hwid(db, key) is Outcome.OK
        assert store.stored_hwid(db, key) == ""
        db.rollback()
        assert catalog.reset_hwid(db, "NO-SUCH") is Outcome.INVALID_LICENSE


class TestUsers:
    def test_register_and_authenticate(self, catalog, db):
        result = catalog.register(db, "new@example.com", "password123")
        assert result.ok
        assert result.value.role is Role.USER

        user = catalog.authenticate(db, "new@example.com", "password123")
        assert user is not None
        assert user.last_login is not None

    def test_register_rejects_duplicates_and_weak_passwords(self, catalog, db, factory):
        factory.user("taken@example.com")
        assert catalog.register(db, "taken@example.com", "password123").outcome is Outcome.ALREADY_EXISTS
        assert catalog.register(db, "new@example.com", "short").outcome is Outcome.INVALID_ARGUMENT

    def test_authenticate_failures(self, catalog, db, factory):
        factory.user("user@example.com")
        assert catalog.authenticate(db, "user@example.com", "wrong-password") is None
        assert catalog.authenticate(db, "ghost@example.com", "password123") is None

    def test_password_is_hashed(self, ctx, db, factory):
        user_id = factory.user(password="password123")
        stored = store.get_user(db, user_id).hashed_password
        assert stored != "password123"
        assert ctx.passwords.verify("password123", stored)

    def test_set_role_revokes_existing_tokens(self, ctx, catalog, db, factory, admin, clock):
        user_id = factory.user()
        old_token = ctx.codec.issue(user_id, Role.USER)
        clock.advance(1)

        assert catalog.set_role(db, admin, user_id, Role.SUPPORT) is Outcome.OK
        assert factory.user_row(user_id)["role"] is Role.SUPPORT
        with pytest.raises(CredentialRevoked):
            ctx.validator.validate(old_token)
        assert ctx.validator.validate(ctx.codec.issue(user_id, Role.SUPPORT)).role is Role.SUPPORT

    def test_set_role_requires_admin(self, ctx, catalog, db, factory):
        user_id = factory.user()
        dev = ctx.codec.claims_for("dev", Role.DEV)
        assert catalog.set_role(db, dev, user_id, Role.ADMIN) is Outcome.FORBIDDEN
        assert factory.user_row(user_id)["role"] is Role.USER

    def test_admin_cannot_demote_self(self, catalog, db, admin):
        assert catalog.set_role(db, admin, admin.subject, Role.USER) is Outcome.SELF_DEMOTION
        assert catalog.set_role(db, admin, admin.subject, Role.ADMIN) is Outcome.OK

    def test_set_role_unknown_user(self, catalog, db, admin):
        assert catalog.set_role(db, admin, "ghost", Role.DEV) is Outcome.USER_NOT_FOUND

    def test_role_change_stands_when_revocation_store_is_down(self, catalog, db, factory, admin):
        user_id = factory.user()
        catalog.registry = Mock()
        catalog.registry.revoke_subject_before.side_effect = StoreUnavailable("connection refused")

        assert catalog.set_role(db, admin, user_id, Role.DEV) is Outcome.OK
        assert factory.user_row(user_id)["role"] is Role.DEV

    def test_subject_products(self, ctx, catalog, db, factory, clock):
        factory.product("app")
        factory.product("old")
        user_id = factory.user()
        factory.license({"app": DAY}, user_id=user_id)
        with ctx.session() as s:
            key = store.get_user(s, user_id).license_key
        factory.license()  # unrelated
        with ctx.session() as s:
            catalog.add_products_to_license(s, key, {"old": 10})
        clock.advance(60)

        claims = ctx.codec.claims_for(user_id, Role.USER)
        assert [g.product_id for g in catalog.subject_products(db, claims)] == ["app"]

        dev = ctx.codec.claims_for("dev", Role.DEV)
        products = catalog.subject_products(db, dev)
        assert [g.product_id for g in products] == ["app", "old"]
        assert all(g.remaining_seconds == UNBOUNDED_SECONDS for g in products)

    def test_subject_without_license_has_no_products(self, ctx, catalog, db, factory):
        user_id = factory.user()
        assert catalog.subject_products(db, ctx.codec.claims_for(user_id, Role.USER)) == []


class TestBans:
    def test_ban_and_unban_user(self, catalog, db, factory):
        user_id = factory.user()
        assert catalog.ban_user(db, user_id) is Outcome.OK
        assert factory.user_row(user_id)["banned"]
        assert catalog.unban_user(db, user_id) is Outcome.OK
        assert not factory.user_row(user_id)["banned"]
        assert catalog.ban_user(db, "ghost") is Outcome.USER_NOT_FOUND

    def test_hwid_bans(self, catalog, db):
        assert catalog.ban_hwid(db, "H1", reason="chargeback") is Outcome.OK
        assert catalog.ban_hwid(db, "H1") is Outcome.ALREADY_EXISTS
        assert catalog.unban_hwid(db, "H1") is Outcome.OK
        assert catalog.unban_hwid(db, "H1") is Outcome.NOT_FOUND


class TestSessions:
    def test_session_lifecycle(self, catalog, db, factory, clock):
        key = factory.license()
        started = catalog.start_session(db, key)
        assert started.ok
        session_id = started.value.id

        clock.advance(300)
        later = catalog.start_session(db, key).value.id
        assert [s.id for s in catalog.list_sessions(db, key)] == [later, session_id]
        db.rollback()

        assert catalog.end_session(db, key, session_id) is Outcome.OK
        assert catalog.end_session(db, key, session_id) is Outcome.NOT_FOUND
        ended = [s for s in catalog.list_sessions(db, key) if s.id == session_id][0]
        assert ended.ended == clock()

    def test_session_requires_license(self, catalog, db):
        assert catalog.start_session(db, "NO-SUCH").outcome is Outcome.INVALID_LICENSE
