"""Password hashing and bearer-token verification."""
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from bson import ObjectId
from fastapi import Cookie, Depends, Header
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from errors import Internal, InvalidToken, Unauthenticated
from settings import Settings, get_settings

TOKEN_COOKIE = "token"


class PasswordHasher:
    def __init__(self, rounds: int = 12):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        try:
            return self._context.hash(password)
        except (TypeError, ValueError) as e:
            raise Internal(str(e)) from e

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return self._context.verify(password, password_hash)
        except (TypeError, ValueError) as e:
            raise Internal(str(e)) from e


class CredentialVerifier:
    """Issues and checks the signed tokens that identify an account."""

    def __init__(self, settings: Settings):
        self._secret = settings.jwt_secret
        self._alg = settings.jwt_alg
        self._ttl = timedelta(seconds=settings.token_ttl_seconds)

    def issue(self, user_id: ObjectId) -> str:
        payload = {
            "sub": str(user_id),
            "role": "user",
            "exp": datetime.now(timezone.utc) + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=self._alg)

    def verify(self, token: Optional[str]) -> ObjectId:
        if not token:
            raise Unauthenticated()
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._alg])
        except ExpiredSignatureError:
            raise InvalidToken("Token has expired")
        except JWTError as e:
            raise InvalidToken(f"Invalid token: {e}")
        user_id = payload.get("sub")
        if not user_id or not ObjectId.is_valid(user_id):
            raise InvalidToken("Invalid token subject")
        return ObjectId(user_id)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


# Dependencies
@lru_cache()
def _hasher(rounds: int) -> PasswordHasher:
    return PasswordHasher(rounds)


def get_hasher(settings: Settings = Depends(get_settings)) -> PasswordHasher:
    return _hasher(settings.bcrypt_rounds)


def get_verifier(settings: Settings = Depends(get_settings)) -> CredentialVerifier:
    return CredentialVerifier(settings)


def get_current_user_id(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Cookie(None),
    verifier: CredentialVerifier = Depends(get_verifier),
) -> ObjectId:
    return verifier.verify(token or bearer_token(authorization))
