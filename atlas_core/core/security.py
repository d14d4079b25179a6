# atlas_core/core/security.py

from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from loguru import logger

from atlas_core.core.config import settings
from atlas_core.core.permissions import Role, can_access_module, is_approver, normalize_role


class SessionUser(BaseModel):
    """Identity carried by the signed session cookie."""
    person_id: str
    role: Role = "unknown"
    raw_role: str = ""
    name: str = ""


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

NoSessionException = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="no_session",
)


# --- Password utilities ---

def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        # Legacy rows may hold plain or malformed hashes
        logger.error(f"Error verifying password (hash might be invalid): {e}")
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# --- Session tokens ---

def session_from_person(person: Dict[str, Any]) -> SessionUser:
    raw_role = str(person.get("fenix_role") or person.get("role") or "").strip().upper()
    return SessionUser(
        person_id=str(person.get("id") or person.get("_id") or ""),
        role=normalize_role(raw_role),
        raw_role=raw_role,
        name=person.get("full_name") or person.get("username") or "",
    )


def create_session_token(person: Dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Signs a session token for a `people` row."""
    subject = str(person.get("id") or person.get("_id") or "").strip()
    if not subject:
        logger.critical("FATAL: Attempted to create a session token without a person id.")
        raise ValueError("Missing person id for session token")

    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=settings.SESSION_DAYS))
    claims = {
        "sub": subject,
        "role": str(person.get("fenix_role") or person.get("role") or ""),
        "name": person.get("full_name") or person.get("username") or "",
        "username": person.get("username") or "",
        "exp": expire,
        "iat": now,
    }
    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.ALGORITHM)
    logger.info(f"Session token created for person: {subject}")
    return token


def decode_session_token(token: str | None) -> Optional[SessionUser]:
    """Returns the session for a valid token, None for a missing, expired or forged one."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.debug(f"Session token rejected: {e}")
        return None

    person_id = str(payload.get("sub") or "").strip()
    if not person_id:
        return None
    raw_role = str(payload.get("role") or payload.get("fenix_role") or "").strip().upper()
    name = payload.get("name") or payload.get("full_name") or payload.get("username") or ""
    return SessionUser(
        person_id=person_id,
        role=normalize_role(raw_role),
        raw_role=raw_role,
        name=name if isinstance(name, str) else "",
    )


# --- FastAPI dependencies ---

async def get_optional_session(request: Request) -> Optional[SessionUser]:
    return decode_session_token(request.cookies.get(settings.SESSION_COOKIE_NAME))


async def get_current_session(
    session: Annotated[Optional[SessionUser], Depends(get_optional_session)],
) -> SessionUser:
    if session is None:
        raise NoSessionException
    return session


CurrentSession = Annotated[SessionUser, Depends(get_current_session)]


async def require_approver(session: CurrentSession) -> SessionUser:
    if not is_approver(session.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return session


def require_module(module: str):
    """Dependency factory: 401 without a session, 403 when the role cannot open `module`."""

    async def _checker(session: CurrentSession) -> SessionUser:
        if not can_access_module(session.role, module):
            logger.bind(service="Permissions", person_id=session.person_id).warning(
                f"Role '{session.role}' denied access to module '{module}'."
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
        return session

    return _checker
