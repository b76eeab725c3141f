from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.orm import Session
from ..config import get_settings
from ..core.auth import Identity
from ..core.clock import Clock
from ..core.security import decode_access_token
from ..db.session import get_db
from ..db.models import AppRole, UserRole
from ..services.booking_service import BookingService


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/v1/token")


def get_current_identity(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> Identity:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    try:
        payload = decode_access_token(token)
    except JWTError as exc:
        raise credentials_exception from exc
    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception
    roles = {
        row.role for row in db.query(UserRole).filter(UserRole.user_id == str(user_id)).all()
    }
    roles.add(AppRole.resident)
    return Identity(user_id=str(user_id), roles=frozenset(roles))


def get_clock() -> Clock:
    return Clock(get_settings().timezone)


def get_booking_service(
    db: Annotated[Session, Depends(get_db)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> BookingService:
    return BookingService(db, clock=clock)


def require_roles(*roles: str):
    def dependency(identity: Annotated[Identity, Depends(get_current_identity)]) -> Identity:
        if not any(role.value in roles for role in identity.roles):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return identity

    return dependency
