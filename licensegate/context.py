"""Application context: every long-lived collaborator, built once from Settings.

The API and the CLI both work through an ``AppContext``; nothing here is a
module-level singleton, so tests can build as many independent contexts as
they need.
"""
from dataclasses import dataclass
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config.settings import Settings, settings as default_settings
from .core.audit import AuditLog
from .core.authorization import AuthorizationEngine
from .core.catalog import Catalog
from .core.credentials import Clock, CredentialCodec, system_clock
from .core.hwid import HwidBindingPolicy
from .core.keys import KeyIssuer
from .core.redemption import RedemptionEngine
from .core.revocation import RevocationRegistry, TTLStore, build_ttl_store
from .core.validator import CredentialValidator
from .database import build_engine, build_session_factory, init_db
from .utils.security import build_password_context


@dataclass
class AppContext:
    settings: Settings
    clock: Clock
    engine: Engine
    SessionLocal: sessionmaker
    ttl_store: TTLStore
    registry: RevocationRegistry
    codec: CredentialCodec
    validator: CredentialValidator
    audit: AuditLog
    passwords: CryptContext
    license_keys: KeyIssuer
    redemption_keys: KeyIssuer
    authorization: AuthorizationEngine
    redemption: RedemptionEngine
    catalog: Catalog

    def session(self) -> Session:
        return self.SessionLocal()

    def init_db(self) -> None:
        init_db(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def build_context(
    config: Optional[Settings] = None,
    clock: Clock = system_clock,
    ttl_store: Optional[TTLStore] = None,
) -> AppContext:
    config = config or default_settings

    engine = build_engine(config)
    ttl_store = ttl_store or build_ttl_store(config.CACHE_URL, clock)
    registry = RevocationRegistry(ttl_store, max_credential_lifetime=config.ACCESS_TOKEN_EXPIRE_SECONDS)
    codec = CredentialCodec(
        config.SECRET_KEY,
        algorithm=config.ALGORITHM,
        lifetime_seconds=config.ACCESS_TOKEN_EXPIRE_SECONDS,
        clock=clock,
    )
    audit = AuditLog(config.AUDIT_LOG_CAPACITY)
    passwords = build_password_context(config.BCRYPT_ROUNDS)
    hwid_policy = HwidBindingPolicy()

    license_keys = KeyIssuer(
        groups=config.LICENSE_KEY_GROUPS,
        group_size=config.KEY_GROUP_SIZE,
        prefix=config.KEY_PREFIX,
        max_attempts=config.KEY_GENERATION_MAX_ATTEMPTS,
    )
    redemption_keys = KeyIssuer(
        groups=config.REDEMPTION_KEY_GROUPS,
        group_size=config.KEY_GROUP_SIZE,
        prefix=config.KEY_PREFIX,
        max_attempts=config.KEY_GENERATION_MAX_ATTEMPTS,
    )

    return AppContext(
        settings=config,
        clock=clock,
        engine=engine,
        SessionLocal=build_session_factory(engine),
        ttl_store=ttl_store,
        registry=registry,
        codec=codec,
        validator=CredentialValidator(codec, registry, fail_open=config.REVOCATION_FAIL_OPEN),
        audit=audit,
        passwords=passwords,
        license_keys=license_keys,
        redemption_keys=redemption_keys,
        authorization=AuthorizationEngine(audit, hwid_policy, clock),
        redemption=RedemptionEngine(license_keys, clock),
        catalog=Catalog(
            registry,
            license_keys,
            redemption_keys,
            passwords,
            hwid_policy=hwid_policy,
            clock=clock,
            min_password_length=config.MIN_PASSWORD_LENGTH,
            max_keys_per_request=config.MAX_KEYS_PER_REQUEST,
        ),
    )
