from passlib.context import CryptContext

from ..config.settings import settings


def build_password_context(rounds: int = settings.BCRYPT_ROUNDS) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


# Password hashing
pwd_context = build_password_context()


def verify_password(plain_password: str, hashed_password: str, context: CryptContext = pwd_context) -> bool:
    """Verify password against its hash"""
    return context.verify(plain_password, hashed_password)


def get_password_hash(password: str, context: CryptContext = pwd_context) -> str:
    """Generate password hash"""
    return context.hash(password)
