"""
Tests for redemption key consumption
"""
import threading

import pytest
from sqlalchemy.exc import OperationalError

from licensegate import store
from licensegate.core.errors import UnknownSubject
from licensegate.core.redemption import RedeemOutcome

HOUR = 3600


@pytest.fixture
def user_id(factory):
    return factory.user()


@pytest.fixture
def key(factory):
    factory.product("app")
    return factory.redemption_keys("app", HOUR)[0]


def test_first_redemption_provisions_license_and_grants(ctx, db, factory, user_id, key, clock):
    result = ctx.redemption.redeem(db, key, user_id)

    assert result.outcome is RedeemOutcome.GRANTED
    assert result.product_id == "app"
    assert result.duration == HOUR
    license_key = factory.user_row(user_id)["license_key"]
    assert license_key == result.license_key
    assert factory.grant(license_key, "app") == (HOUR, clock())


def test_second_redemption_extends_without_moving_start(ctx, db, factory, user_id, key, clock):
    started = clock()
    ctx.redemption.redeem(db, key, user_id)
    clock.advance(600)

    second = factory.redemption_keys("app", 2 * HOUR)[0]
    result = ctx.redemption.redeem(db, second, user_id)

    assert result.outcome is RedeemOutcome.EXTENDED
    assert factory.grant(result.license_key, "app") == (3 * HOUR, started)


def test_key_is_single_use(ctx, db, user_id, key):
    assert ctx.redemption.redeem(db, key, user_id).ok
    assert ctx.redemption.redeem(db, key, user_id).outcome is RedeemOutcome.INVALID_OR_USED_KEY


def test_unknown_key(ctx, db, user_id):
    assert ctx.redemption.redeem(db, "NO-SUCH-KEY", user_id).outcome is RedeemOutcome.INVALID_OR_USED_KEY


def test_unknown_subject_does_not_consume_key(ctx, db, key):
    with pytest.raises(UnknownSubject):
        ctx.redemption.redeem(db, key, "ghost")
    assert store.key_in_use(db, key)


def test_store_error_rolls_back_consumption(ctx, db, user_id, key, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("UPDATE license_products", {}, Exception("disk I/O error"))

    monkeypatch.setattr(store, "extend_license_product", broken)

    result = ctx.redemption.redeem(db, key, user_id)
    assert result.outcome is RedeemOutcome.STORE_ERROR
    assert store.key_in_use(db, key)
    db.rollback()

    monkeypatch.undo()
    assert ctx.redemption.redeem(db, key, user_id).outcome is RedeemOutcome.GRANTED


def test_concurrent_redemptions_apply_once(ctx, factory, key):
    """Two redeemers race for one key: exactly one wins, the time is added once"""
    users = [factory.user("a@example.com"), factory.user("b@example.com")]
    barrier = threading.Barrier(2)
    results = {}

    def redeem(subject):
        with ctx.session() as session:
            barrier.wait()
            results[subject] = ctx.redemption.redeem(session, key, subject)

    threads = [threading.Thread(target=redeem, args=(u,)) for u in users]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    outcomes = sorted(r.outcome.value for r in results.values())
    assert outcomes == sorted([RedeemOutcome.GRANTED.value, RedeemOutcome.INVALID_OR_USED_KEY.value])

    winner = next(u for u, r in results.items() if r.ok)
    loser = next(u for u in users if u != winner)
    assert factory.grant(results[winner].license_key, "app") == (HOUR, ctx.clock())
    assert factory.user_row(loser)["license_key"] is None
