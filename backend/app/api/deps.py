from collections.abc import Callable, Generator
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.security import decode_token
from app.db.session import SessionLocal
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

# Missing credentials are reported as 401 below rather than HTTPBearer's default.
bearer_scheme = HTTPBearer(auto_error=False)

SCHEDULE_EDITORS = (UserRole.admin, UserRole.coordinator)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token's subject to an active user."""
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        subject = decode_token(credentials.credentials).get("sub")
    except JWTError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        raise _unauthorized("Could not validate credentials") from exc

    user = db.get(User, subject) if subject else None
    if user is None:
        raise _unauthorized("Could not validate credentials")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    allowed = frozenset(roles)

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of: {', '.join(sorted(role.value for role in allowed))}",
            )
        return current_user

    return role_checker


require_schedule_editor = require_roles(*SCHEDULE_EDITORS)
