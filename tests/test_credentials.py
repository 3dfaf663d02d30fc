"""
Tests for credential encoding, revocation and validation
"""
import pytest
import redis
from jose import jwt
from unittest.mock import Mock

from licensegate.core.credentials import CredentialCodec
from licensegate.core.errors import CredentialExpired, CredentialInvalid, CredentialRevoked, StoreUnavailable
from licensegate.core.revocation import (
    MemoryTTLStore,
    RedisTTLStore,
    RevocationRegistry,
    SUBJECT_PREFIX,
    build_ttl_store,
)
from licensegate.core.roles import Role
from licensegate.core.validator import CredentialValidator

SECRET = "unit-test-secret"


@pytest.fixture
def codec(clock):
    return CredentialCodec(SECRET, clock=clock)


@pytest.fixture
def registry(clock):
    return RevocationRegistry(MemoryTTLStore(clock))


@pytest.fixture
def validator(codec, registry):
    return CredentialValidator(codec, registry)


def test_issue_and_decode(codec, clock):
    token = codec.issue("user-1", Role.SUPPORT, email="u@example.com")
    claims = codec.decode(token)

    assert claims.subject == "user-1"
    assert claims.role is Role.SUPPORT
    assert claims.issued_at == clock()
    assert claims.expires_at == clock() + 24 * 60 * 60
    assert claims.email == "u@example.com"


def test_expired_token_rejected(clock):
    two_days_ago = clock() - 2 * 24 * 60 * 60
    old_codec = CredentialCodec(SECRET, clock=lambda: two_days_ago)
    token = old_codec.issue("user-1", Role.USER)

    with pytest.raises(CredentialExpired):
        CredentialCodec(SECRET, clock=clock).decode(token)


def test_expiry_follows_the_codec_clock(codec, clock):
    token = codec.issue("user-1", Role.USER)
    clock.advance(24 * 60 * 60)
    assert codec.decode(token).subject == "user-1"

    clock.advance(1)
    with pytest.raises(CredentialExpired):
        codec.decode(token)


def test_expiry_ignores_wall_clock():
    long_ago = 1_000_000_000
    codec = CredentialCodec(SECRET, clock=lambda: long_ago)
    assert codec.decode(codec.issue("user-1", Role.USER)).issued_at == long_ago


def test_wrong_signature_rejected(codec):
    token = CredentialCodec("another-secret").issue("user-1", Role.USER)
    with pytest.raises(CredentialInvalid):
        codec.decode(token)


def test_garbage_rejected(codec):
    with pytest.raises(CredentialInvalid):
        codec.decode("not-a-token")


def test_unknown_role_rejected(codec, clock):
    token = jwt.encode(
        {"sub": "user-1", "role": "Owner", "iat": clock(), "exp": clock() + 60},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(CredentialInvalid):
        codec.decode(token)


def test_missing_issued_at_rejected(codec, clock):
    token = jwt.encode({"sub": "user-1", "role": "User", "exp": clock() + 60}, SECRET, algorithm="HS256")
    with pytest.raises(CredentialInvalid):
        codec.decode(token)


def test_codec_requires_secret():
    with pytest.raises(ValueError):
        CredentialCodec("")


def test_subject_cutoff_rejects_only_older_tokens(codec, registry, validator, clock):
    """Token issued at T survives until a cutoff C > T; tokens at or after C pass"""
    old_token = codec.issue("user-1", Role.USER)
    assert validator.validate(old_token).subject == "user-1"

    clock.advance(10)
    registry.revoke_subject_before("user-1", clock())

    with pytest.raises(CredentialRevoked):
        validator.validate(old_token)

    new_token = codec.issue("user-1", Role.USER)
    assert validator.validate(new_token).issued_at == clock()


def test_cutoff_equal_to_issue_time_is_accepted(codec, registry, validator, clock):
    token = codec.issue("user-1", Role.USER)
    registry.revoke_subject_before("user-1", clock())
    assert validator.validate(token).subject == "user-1"


def test_cutoff_does_not_affect_other_subjects(codec, registry, validator, clock):
    token = codec.issue("user-2", Role.USER)
    registry.revoke_subject_before("user-1", clock() + 100)
    assert validator.validate(token).subject == "user-2"


def test_cutoff_record_expires(registry, clock):
    registry.revoke_subject_before("user-1", clock(), ttl=60)
    assert registry.is_subject_revoked("user-1", clock() - 1)

    clock.advance(60)
    assert registry.subject_cutoff("user-1") is None
    assert not registry.is_subject_revoked("user-1", clock() - 1000)


def test_clear_subject(registry, clock):
    registry.revoke_subject_before("user-1", clock())
    registry.clear_subject("user-1")
    assert registry.subject_cutoff("user-1") is None


def test_unparsable_cutoff_ignored(registry, clock):
    registry.store.set(SUBJECT_PREFIX + "user-1", "garbage", 60)
    assert registry.subject_cutoff("user-1") is None


def test_logout_blacklists_exact_token(codec, validator, clock):
    token = codec.issue("user-1", Role.USER)
    validator.revoke(token, codec.decode(token))

    with pytest.raises(CredentialRevoked):
        validator.validate(token)

    clock.advance(1)
    other = codec.issue("user-1", Role.USER)
    assert validator.validate(other).subject == "user-1"


def test_revoked_error_is_invalid_credential(codec, validator):
    token = codec.issue("user-1", Role.USER)
    validator.revoke(token, codec.decode(token))
    with pytest.raises(CredentialInvalid):
        validator.validate(token)


def _unreachable_store():
    store = Mock()
    store.exists.side_effect = StoreUnavailable("connection refused")
    store.get.side_effect = StoreUnavailable("connection refused")
    return store


def test_store_outage_fails_open(codec):
    validator = CredentialValidator(codec, RevocationRegistry(_unreachable_store()), fail_open=True)
    token = codec.issue("user-1", Role.USER)
    assert validator.validate(token).subject == "user-1"


def test_store_outage_fails_closed(codec):
    validator = CredentialValidator(codec, RevocationRegistry(_unreachable_store()), fail_open=False)
    token = codec.issue("user-1", Role.USER)
    with pytest.raises(CredentialRevoked):
        validator.validate(token)


def test_decode_failure_skips_registry(codec):
    store = _unreachable_store()
    validator = CredentialValidator(codec, RevocationRegistry(store), fail_open=False)
    with pytest.raises(CredentialInvalid):
        validator.validate("not-a-token")
    store.exists.assert_not_called()


def test_memory_store_expiry(clock):
    store = MemoryTTLStore(clock)
    store.set("k", "v", 10)
    assert store.get("k") == "v"
    clock.advance(10)
    assert store.get("k") is None
    assert not store.exists("k")


def test_memory_store_drops_unread_expired_entries(clock):
    store = MemoryTTLStore(clock)
    for i in range(100):
        store.set(f"blacklist:token:{i}", "1", 60)
    clock.advance(60)

    store.set("blacklist:token:fresh", "1", 60)
    assert len(store) == 1
    assert store.exists("blacklist:token:fresh")


def test_redis_store_wraps_errors():
    client = Mock()
    client.setex.side_effect = redis.ConnectionError("down")
    client.exists.side_effect = redis.TimeoutError("slow")
    store = RedisTTLStore(client)

    with pytest.raises(StoreUnavailable):
        store.set("k", "v", 10)
    with pytest.raises(StoreUnavailable):
        store.exists("k")


def test_redis_store_uses_ttl():
    client = Mock()
    client.get.return_value = "123"
    store = RedisTTLStore(client)

    store.set("k", "v", 30)
    client.setex.assert_called_once_with("k", 30, "v")
    assert store.get("k") == "123"


def test_build_ttl_store_by_scheme(clock):
    assert isinstance(build_ttl_store("memory://", clock), MemoryTTLStore)
    assert isinstance(build_ttl_store("redis://localhost:6379/0"), RedisTTLStore)
    with pytest.raises(ValueError):
        build_ttl_store("ftp://example.com")
