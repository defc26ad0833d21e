from collections.abc import Callable, Generator, Iterable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from timetabler.core.config import get_settings
from timetabler.core.security import Caller, UserRole, decode_token
from timetabler.db.session import SessionLocal
from timetabler.services.timetable_store import SchedulingPolicy

security = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_caller(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Caller:
    token = credentials.credentials
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        caller_id = payload.get("sub")
        if caller_id is None:
            raise credentials_exception
        role = UserRole(payload.get("role"))
    except (JWTError, ValueError) as exc:
        raise credentials_exception from exc
    return Caller(id=str(caller_id), role=role)


def require_roles(*roles: UserRole) -> Callable[[Caller], Caller]:
    allowed_roles: Iterable[UserRole] = set(roles)

    def role_checker(caller: Caller = Depends(get_current_caller)) -> Caller:
        if caller.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return caller

    return role_checker


def get_policy() -> SchedulingPolicy:
    return SchedulingPolicy.from_settings(get_settings())
