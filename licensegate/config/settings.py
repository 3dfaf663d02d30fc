import os
from typing import List
from pydantic_settings import BaseSettings
from pathlib import Path
PACKAGE_DIR = Path(__file__).parent.parent.absolute()


class Settings(BaseSettings):
    # Basic API settings
    PROJECT_NAME: str = "LicenseGate API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Credentials
    SECRET_KEY: str = os.getenv("SECRET_KEY", "development-key-change-this-in-production")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 24 * 60
    ALGORITHM: str = "HS256"

    # Password policy
    MIN_PASSWORD_LENGTH: int = 8
    BCRYPT_ROUNDS: int = 12

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        f"sqlite:///{PACKAGE_DIR}/licensegate.db"
    )
    POOL_SIZE: int = 5
    MAX_OVERFLOW: int = 10

    # Revocation store: redis://host:port/db or memory://
    CACHE_URL: str = os.getenv("CACHE_URL", "memory://")
    # When the revocation store is unreachable, treat tokens as not revoked.
    # Setting this to False rejects every bearer credential during an outage.
    REVOCATION_FAIL_OPEN: bool = True

    # Key issuance
    KEY_PREFIX: str = ""
    KEY_GROUP_SIZE: int = 5
    LICENSE_KEY_GROUPS: int = 3
    REDEMPTION_KEY_GROUPS: int = 7
    KEY_GENERATION_MAX_ATTEMPTS: int = 10
    MAX_KEYS_PER_REQUEST: int = 1000

    # In-memory audit trail
    AUDIT_LOG_CAPACITY: int = 10000

    # CORS settings
    ALLOWED_ORIGINS: List[str] = ["*"]  # Change in production
    ALLOWED_METHODS: List[str] = ["*"]
    ALLOWED_HEADERS: List[str] = ["*"]

    # Documentation
    ENABLE_DOCS: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def ACCESS_TOKEN_EXPIRE_SECONDS(self) -> int:
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def DATABASE_SETTINGS(self) -> dict:
        if self.DATABASE_URL.startswith("sqlite"):
            return {"connect_args": {"check_same_thread": False, "timeout": 30}}
        return {
            "pool_size": self.POOL_SIZE,
            "max_overflow": self.MAX_OVERFLOW,
            "pool_timeout": 30,
            "pool_recycle": 1800,
        }

    def validate_for_environment(self) -> None:
        if self.ENVIRONMENT == "production":
            assert not self.SECRET_KEY.startswith("development-"), \
                "Production environment must use a secure SECRET_KEY"
            assert self.ALLOWED_ORIGINS != ["*"], \
                "Production environment must specify explicit CORS origins"


# Create settings instance
settings = Settings()
settings.validate_for_environment()
