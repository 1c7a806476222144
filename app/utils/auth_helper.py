import os
import logging
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from sqlmodel import Session, select

from app.config import JWT_ALGORITHM
from app.db.db import get_session
from app.models.user import REPORTER_ROLES, User, UserRole



logger = logging.getLogger(__name__)

bearer_scheme_required = HTTPBearer(auto_error=True)


def get_current_user_required(token: HTTPAuthorizationCredentials = Depends(bearer_scheme_required)):
    try:
        payload = jwt.decode(
            token.credentials,
            os.getenv("JWT_SECRET"),
            algorithms=[JWT_ALGORITHM],
        )
        return payload
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_db_user(session: Session, current_user):
    user = session.exec(
        select(User).where(User.public_id == current_user["sub"])
    ).first()

    if not user:
        logger.warning("Token subject %s has no user record", current_user.get("sub"))
        raise HTTPException(status_code=404, detail="User not found")

    return user


def get_user(
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
) -> User:
    return get_db_user(session, current_user)


def require_admin(user: User = Depends(get_user)) -> User:
    if user.role != UserRole.admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def require_reporter(user: User = Depends(get_user)) -> User:
    # students, staff and teachers
    if user.role not in REPORTER_ROLES:
        raise HTTPException(status_code=403, detail="Student, staff or teacher access required")
    return user
