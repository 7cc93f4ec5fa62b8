"""
Runtime configuration for the shop API.

Values come from the environment once: ``get_settings`` builds the Settings
object on first use and every request dependency (database, token verifier,
password hasher) receives that same object. Nothing reads os.environ after
that.
"""
import os
from functools import lru_cache

from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "shop"
    jwt_secret: str = "dev-secret-change-me"
    jwt_alg: str = "HS256"
    token_ttl_seconds: int = Field(7 * 24 * 60 * 60, gt=0)
    bcrypt_rounds: int = Field(12, ge=4, le=31)
    write_retries: int = Field(3, ge=1)
    log_level: str = "INFO"
    log_json: bool = False
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "shop"),
            jwt_secret=os.getenv("JWT_SECRET", "dev-secret-change-me"),
            jwt_alg=os.getenv("JWT_ALG", "HS256"),
            token_ttl_seconds=int(os.getenv("TOKEN_TTL_SECONDS", 7 * 24 * 60 * 60)),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 12)),
            write_retries=int(os.getenv("WRITE_RETRIES", 3)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_json=_env_bool("LOG_JSON", False),
            port=int(os.getenv("PORT", 8000)),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
