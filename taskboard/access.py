"""
Access models for the board API.

Three interchangeable strategies sit in front of the same KanbanStore:

    OpenAccess          — no identity, one global scope
    SharedSecretAccess  — one configured username/password; login hands
                          out an opaque bearer token; global scope
    PerAccountAccess    — registered accounts, JWT access token plus a
                          rotating refresh token; one scope per account

authenticate() turns request headers into the owner_id the store is
called with (None for the global scope) or raises Unauthenticated.
"""
import hmac
import logging
import secrets
import threading
import time
from typing import Dict, Mapping, Optional

from werkzeug.security import check_password_hash

from .accounts import AccountStore, Session
from .audit import AuditLogger
from .errors import Unauthenticated, ValidationError
from .store import KanbanStore

logger = logging.getLogger(__name__)

ALT_TOKEN_HEADER = "X-Auth-Token"


def bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    """Token from 'Authorization: Bearer …', else from X-Auth-Token."""
    auth = headers.get("Authorization", "") or ""
    if auth.startswith("Bearer "):
        token = auth[len("Bearer "):].strip()
        if token:
            return token
    alt = (headers.get(ALT_TOKEN_HEADER, "") or "").strip()
    return alt or None


class OpenAccess:
    """Everyone shares the global scope."""
    mode = "open"

    def authenticate(self, headers: Mapping[str, str]) -> Optional[str]:
        return None


class SharedSecretAccess:
    """Single fixed identity guarding the global scope."""
    mode = "shared-secret"

    def __init__(self, username: str, password_hash: str, token_ttl: Optional[int] = None,
                 audit: Optional[AuditLogger] = None):
        self.username = username
        self.password_hash = password_hash
        self.token_ttl = token_ttl
        self.audit = audit or AuditLogger(None)
        # token -> issued-at (epoch seconds)
        self._tokens: Dict[str, float] = {}
        self._lock = threading.Lock()

    def login(self, username, password) -> str:
        if not username or not password or not isinstance(username, str) or not isinstance(password, str):
            raise ValidationError("Username and password required")
        user_ok = hmac.compare_digest(username.strip().encode(), self.username.encode())
        pass_ok = check_password_hash(self.password_hash, password)
        if not (user_ok and pass_ok):
            self.audit.log("login_failed", email=username.strip())
            raise Unauthenticated("Invalid credentials")

        token = secrets.token_urlsafe(32)
        with self._lock:
            self._tokens[token] = time.time()
        self.audit.log("login", email=self.username)
        return token

    def logout(self, token: Optional[str]) -> None:
        if not token:
            return
        with self._lock:
            if self._tokens.pop(token, None) is not None:
                self.audit.log("logout", email=self.username)

    def authenticate(self, headers: Mapping[str, str]) -> Optional[str]:
        token = bearer_token(headers)
        if not token:
            raise Unauthenticated("Unauthorized")
        with self._lock:
            issued = self._tokens.get(token)
            if issued is None:
                raise Unauthenticated("Invalid token")
            if self.token_ttl is not None and time.time() - issued > self.token_ttl:
                del self._tokens[token]
                raise Unauthenticated("Token expired")
        return None


class PerAccountAccess:
    """Every account sees only its own projects and tasks."""
    mode = "per-account"

    def __init__(self, accounts: AccountStore, store: KanbanStore):
        self.accounts = accounts
        self.store = store

    def register(self, email, password) -> Session:
        session = self.accounts.register(email, password)
        self.store.ensure_default_project(owner_id=session.user["id"])
        return session

    def login(self, email, password) -> Session:
        return self.accounts.login(email, password)

    def refresh(self, refresh_token: Optional[str]) -> Session:
        return self.accounts.refresh(refresh_token)

    def logout(self, refresh_token: Optional[str], headers: Mapping[str, str]) -> None:
        self.accounts.logout(refresh_token, access_token=bearer_token(headers))

    def current_user(self, headers: Mapping[str, str]) -> Dict[str, str]:
        return self.accounts.verify_access_token(bearer_token(headers))

    def authenticate(self, headers: Mapping[str, str]) -> Optional[str]:
        return self.current_user(headers)["id"]
