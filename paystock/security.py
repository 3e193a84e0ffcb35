"""
Admin report access gate:
- Single shared credential via HTTP Basic
- Password checked against a bcrypt hash from settings
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
import bcrypt
import logging
import secrets

logger = logging.getLogger(__name__)

security = HTTPBasic(realm="Admin", auto_error=False)


def get_password_hash(password: str) -> str:
    """Hash a password for ADMIN_PASSWORD_HASH"""
    return bcrypt.hashpw(password.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8")[:72], hashed_password.encode("utf-8"))
    except ValueError:
        logger.error("ADMIN_PASSWORD_HASH is not a valid bcrypt hash")
        return False


def require_admin(
    request: Request,
    credentials: HTTPBasicCredentials | None = Depends(security),
) -> str:
    settings = request.app.state.settings
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": 'Basic realm="Admin"'},
    )

    if credentials is None:
        raise unauthorized
    if not settings.ADMIN_PASSWORD_HASH:
        logger.warning("Admin report requested but ADMIN_PASSWORD_HASH is not set")
        raise unauthorized

    username_ok = secrets.compare_digest(
        credentials.username.encode("utf-8"), settings.ADMIN_USERNAME.encode("utf-8")
    )
    password_ok = verify_password(credentials.password, settings.ADMIN_PASSWORD_HASH)
    if not (username_ok and password_ok):
        logger.warning(f"Failed admin login for username: {credentials.username}")
        raise unauthorized
    return credentials.username
