"""Password hashing, bearer-token issuance and request authentication."""

import base64
import hashlib
import hmac
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generator, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import settings
from .database import SessionLocal
from .errors import Forbidden, Unauthenticated
from .models.token import AccessToken
from .models.user import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

_HASH_SCHEME = "pbkdf2_sha256"


def get_db() -> Generator[Session, None, None]:
    """Provide a session scoped to a single request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def hash_password(password: str, iterations: Optional[int] = None) -> str:
    iterations = iterations or settings.password_hash_iterations
    salt = base64.b64encode(os.urandom(16)).decode("ascii").rstrip("=")
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    encoded = base64.b64encode(digest).decode("ascii").rstrip("=")
    return f"{_HASH_SCHEME}${iterations}${salt}${encoded}"


def verify_password(password: str, hashed: str) -> bool:
    try:
        scheme, iterations, salt, expected = hashed.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if scheme != _HASH_SCHEME:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), rounds)
    encoded = base64.b64encode(digest).decode("ascii").rstrip("=")
    return hmac.compare_digest(encoded, expected)


def create_access_token(session: Session, user: User, name: str = "auth_token") -> str:
    """Record a new token for ``user`` and return its signed form.

    The caller owns the transaction; the token row is only added to the
    session here.
    """
    now = datetime.utcnow()
    expires_at = now + timedelta(minutes=settings.access_token_expire_minutes)
    jti = uuid.uuid4().hex
    session.add(AccessToken(user_id=user.id, jti=jti, name=name, expires_at=expires_at))
    payload = {"sub": str(user.id), "jti": jti, "exp": expires_at, "type": "access"}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@dataclass
class AuthContext:
    """The authenticated caller and the token the request presented."""

    user: User
    token: AccessToken

    @property
    def is_admin(self) -> bool:
        return self.user.is_admin


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.PyJWTError:
        raise Unauthenticated()

    jti = payload.get("jti")
    subject = payload.get("sub")
    if not jti or subject is None or payload.get("type") != "access":
        raise Unauthenticated()

    token = db.query(AccessToken).filter(AccessToken.jti == jti).first()
    if token is None or str(token.user_id) != str(subject):
        raise Unauthenticated()
    if token.expires_at < datetime.utcnow():
        raise Unauthenticated()

    token.last_used_at = datetime.utcnow()
    db.commit()
    return AuthContext(user=token.user, token=token)


def require_admin(context: AuthContext = Depends(get_current_user)) -> AuthContext:
    if not context.is_admin:
        logger.warning("admin route refused for user=%s", context.user.id)
        raise Forbidden()
    return context


def authorize_owner(context: AuthContext, resource) -> None:
    """Allow the resource's owner or an admin; refuse everyone else."""
    if resource.user_id != context.user.id and not context.is_admin:
        logger.warning(
            "forbidden %s id=%s for user=%s",
            type(resource).__name__.lower(),
            resource.id,
            context.user.id,
        )
        raise Forbidden()
