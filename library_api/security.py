"""Credentials, bearer tokens and the token revocation store."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, UTC
from typing import Dict, Optional, Tuple

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .database import get_db
from .errors import AuthenticationError
from .hashing import dummy_verify, verify_password
from .models import User
from .schemas import Principal


logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class TokenStore(ABC):
    """
    Expiring record of issued tokens.

    Only explicit revocations deny access: a token the store has never seen
    is treated as active as long as its signature and expiry are valid.
    """

    @abstractmethod
    def activate(self, token: str, expires_at: float) -> None:
        ...

    @abstractmethod
    def revoke(self, token: str, expires_at: float) -> None:
        ...

    @abstractmethod
    def is_revoked(self, token: str) -> bool:
        ...


class MemoryTokenStore(TokenStore):
    """
    Process-local store keyed by token, each entry kept until ``expires_at``.

    Safe for concurrent requests. Entries are not shared between processes,
    so a horizontally scaled deployment needs a shared implementation.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[bool, float]] = {}
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        expired = [token for token, (_, expires_at) in self._entries.items() if expires_at <= now]
        for token in expired:
            del self._entries[token]

    def activate(self, token: str, expires_at: float) -> None:
        with self._lock:
            self._purge(self._clock())
            entry = self._entries.get(token)
            # a revoked token stays revoked
            if entry is None or entry[0]:
                self._entries[token] = (True, expires_at)

    def revoke(self, token: str, expires_at: float) -> None:
        with self._lock:
            self._purge(self._clock())
            self._entries[token] = (False, expires_at)

    def is_revoked(self, token: str) -> bool:
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return False
            active, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[token]
                return False
            return not active

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


token_store = MemoryTokenStore()


def get_token_store() -> TokenStore:
    return token_store


def create_access_token(user: User, settings: Settings, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(UTC)
    claims = {
        "id": user.id,
        "email": user.email,
        "firstname": user.firstname,
        "lastname": user.lastname,
        "roles": user.role_ids,
        "iat": now,
        "exp": now + timedelta(seconds=settings.token_ttl_seconds),
    }
    return jwt.encode(claims, settings.token_secret, algorithm=settings.token_algorithm)


def decode_access_token(token: str, settings: Settings) -> dict:
    try:
        return jwt.decode(token, settings.token_secret, algorithms=[settings.token_algorithm])
    except jwt.PyJWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise AuthenticationError() from exc


def authenticate(db: Session, email: str, password: str, store: TokenStore, settings: Settings) -> str:
    """
    Check ``email``/``password`` and issue a bearer token.

    The same error is raised for an unknown email and a wrong password.
    """
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        dummy_verify()
        raise AuthenticationError("Invalid email or password")
    if not verify_password(password, user.password):
        raise AuthenticationError("Invalid email or password")

    token = create_access_token(user, settings)
    claims = decode_access_token(token, settings)
    store.activate(token, claims["exp"])
    logger.info("User %s logged in", user.id)
    return token


def verify(token: str, store: TokenStore, settings: Settings) -> Principal:
    if not token:
        raise AuthenticationError()
    claims = decode_access_token(token, settings)
    if store.is_revoked(token):
        logger.info("Rejected revoked token for user %s", claims.get("id"))
        raise AuthenticationError()
    try:
        return Principal(**claims)
    except ValueError as exc:
        raise AuthenticationError() from exc


def revoke(token: str, store: TokenStore, settings: Settings) -> None:
    claims = decode_access_token(token, settings)
    store.revoke(token, claims["exp"])
    logger.info("User %s logged out", claims.get("id"))


def get_bearer_token(credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme)) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    return credentials.credentials


def get_current_principal(
    token: str = Depends(get_bearer_token),
    store: TokenStore = Depends(get_token_store),
    settings: Settings = Depends(get_settings),
) -> Principal:
    return verify(token, store, settings)
