"""
Per-account identities and credentials.
────────────────────────────────────────
Identities and refresh (session) credentials live in their own JSON
snapshot, separate from board data.

    access token   — HS256 JWT {sub, email, exp, jti}, short TTL, not stored;
                     logout keeps its jti on an in-memory denylist
    refresh token  — opaque random string, stored with its expiry,
                     rotated on every use and deleted on logout

Refresh rotation is serialized inside the process so that of two racing
refreshes on the same token, the first one to persist wins and the
other is rejected as stale.
"""
import logging
import secrets
import threading
import time
from typing import Any, Callable, Dict, Optional

from jose import jwt, JWTError
from werkzeug.security import generate_password_hash, check_password_hash

from .audit import AuditLogger, utc_now
from .errors import ValidationError, Unauthenticated, Conflict
from .schema import new_id

logger = logging.getLogger(__name__)

JWT_ALG = "HS256"
MIN_PASSWORD_LENGTH = 6


def public_user(user: Dict[str, Any]) -> Dict[str, str]:
    """The part of a user record that may leave the server."""
    return {"id": user["id"], "email": user["email"]}


class Session:
    """Result of register/login/refresh."""

    def __init__(self, user: Dict[str, str], access_token: str, refresh_token: str):
        self.user = user
        self.access_token = access_token
        self.refresh_token = refresh_token

    def to_dict(self) -> Dict[str, Any]:
        return {"user": self.user, "accessToken": self.access_token}


class AccountStore:
    """Registration, login and credential lifecycle over an auth snapshot."""

    def __init__(
        self,
        storage,
        jwt_secret: str,
        access_ttl: int = 15 * 60,
        refresh_ttl_ms: int = 1000 * 60 * 60 * 24 * 30,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.jwt_secret = jwt_secret
        self.access_ttl = access_ttl
        self.refresh_ttl_ms = refresh_ttl_ms
        self.audit = audit or AuditLogger(None)
        self.clock = clock
        self._lock = threading.Lock()
        # jti -> exp of access tokens revoked by logout before they expired
        self._revoked: Dict[str, int] = {}

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    # ──────────────────────────────────────────
    # Tokens
    # ──────────────────────────────────────────

    def issue_access_token(self, user: Dict[str, Any]) -> str:
        exp = int(self.clock()) + self.access_ttl
        claims = {"sub": user["id"], "email": user["email"], "exp": exp, "jti": new_id()}
        return jwt.encode(claims, self.jwt_secret, algorithm=JWT_ALG)

    def verify_access_token(self, token: Optional[str]) -> Dict[str, str]:
        """Return {id, email} for a valid access token."""
        if not token:
            raise Unauthenticated("Unauthorized")
        try:
            payload = jwt.decode(token, self.jwt_secret, algorithms=[JWT_ALG])
        except JWTError:
            raise Unauthenticated("Invalid token")
        uid = payload.get("sub")
        if not uid or payload.get("jti") in self._revoked:
            raise Unauthenticated("Invalid token")
        return {"id": uid, "email": payload.get("email", "")}

    def _new_refresh_token(self, user_id: str) -> Dict[str, Any]:
        return {
            "token": secrets.token_hex(32),
            "userId": user_id,
            "expiresAt": self._now_ms() + self.refresh_ttl_ms,
        }

    def _open_session(self, db: Dict[str, Any], user: Dict[str, Any]) -> Session:
        """Append a fresh refresh token to db and build the session."""
        refresh = self._new_refresh_token(user["id"])
        db["refreshTokens"].append(refresh)
        return Session(public_user(user), self.issue_access_token(user), refresh["token"])

    # ──────────────────────────────────────────
    # Identities
    # ──────────────────────────────────────────

    @staticmethod
    def _find_user(db: Dict[str, Any], email: str) -> Optional[Dict[str, Any]]:
        email = email.strip().lower()
        return next(
            (u for u in db["users"] if u.get("email", "").lower() == email),
            None,
        )

    def register(self, email: Any, password: Any) -> Session:
        if not isinstance(email, str) or not email.strip():
            raise ValidationError("Email is required")
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        with self._lock:
            db = self.storage.read_snapshot()
            if self._find_user(db, email):
                raise Conflict("Email already in use")

            user = {
                "id": new_id(),
                "email": email.strip().lower(),
                "passwordHash": generate_password_hash(password),
                "createdAt": utc_now(),
            }
            db["users"].append(user)
            session = self._open_session(db, user)
            self.storage.write_snapshot(db)

        logger.info(f"Registered user {user['id']}")
        self.audit.log("register", user_id=user["id"], email=user["email"])
        return session

    def login(self, email: Any, password: Any) -> Session:
        if not email or not password or not isinstance(email, str) or not isinstance(password, str):
            raise ValidationError("Email and password required")

        with self._lock:
            db = self.storage.read_snapshot()
            user = self._find_user(db, email)
            if not user or not check_password_hash(user.get("passwordHash", ""), password):
                self.audit.log("login_failed", email=email.strip().lower())
                raise Unauthenticated("Invalid credentials")
            session = self._open_session(db, user)
            self.storage.write_snapshot(db)

        self.audit.log("login", user_id=user["id"], email=user["email"])
        return session

    # ──────────────────────────────────────────
    # Session credential lifecycle
    # ──────────────────────────────────────────

    def refresh(self, token: Optional[str]) -> Session:
        """
        Exchange a refresh token for a new access token and a new refresh
        token. The presented token is invalidated either way.
        """
        if not token:
            raise Unauthenticated("Missing refresh token")

        with self._lock:
            db = self.storage.read_snapshot()
            stored = next((r for r in db["refreshTokens"] if r.get("token") == token), None)
            user = None
            if stored and stored.get("expiresAt", 0) >= self._now_ms():
                user = next((u for u in db["users"] if u.get("id") == stored.get("userId")), None)

            db["refreshTokens"] = [r for r in db["refreshTokens"] if r.get("token") != token]
            if user is None:
                if stored:
                    self.storage.write_snapshot(db)
                self.audit.log("refresh_rejected", user_id=stored.get("userId") if stored else None)
                raise Unauthenticated("Invalid refresh token")

            session = self._open_session(db, user)
            self.storage.write_snapshot(db)

        self.audit.log("refresh", user_id=user["id"], email=user["email"])
        return session

    def revoke_access_token(self, token: Optional[str]) -> None:
        """Refuse an access token for the rest of its lifetime."""
        if not token:
            return
        try:
            payload = jwt.decode(token, self.jwt_secret, algorithms=[JWT_ALG])
        except JWTError:
            return
        now = int(self.clock())
        self._revoked = {j: exp for j, exp in self._revoked.items() if exp >= now}
        if payload.get("jti"):
            self._revoked[payload["jti"]] = payload.get("exp", now)

    def logout(self, token: Optional[str], access_token: Optional[str] = None) -> None:
        """
        Drop the refresh token and revoke the access token presented with
        it. Unknown or missing tokens are ignored.
        """
        self.revoke_access_token(access_token)
        if not token:
            return
        with self._lock:
            db = self.storage.read_snapshot()
            stored = next((r for r in db["refreshTokens"] if r.get("token") == token), None)
            if stored is None:
                return
            db["refreshTokens"] = [r for r in db["refreshTokens"] if r.get("token") != token]
            self.storage.write_snapshot(db)
        self.audit.log("logout", user_id=stored.get("userId"))

    def purge_expired(self) -> int:
        """Remove every expired refresh token. Returns how many were dropped."""
        with self._lock:
            db = self.storage.read_snapshot()
            now = self._now_ms()
            kept = [r for r in db["refreshTokens"] if r.get("expiresAt", 0) >= now]
            dropped = len(db["refreshTokens"]) - len(kept)
            if dropped:
                db["refreshTokens"] = kept
                self.storage.write_snapshot(db)
        return dropped

