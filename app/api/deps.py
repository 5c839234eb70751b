"""
FastAPI Dependencies

Provides dependency injection for the acting planner (bearer JWT), the
process-wide store registry and the planning session.

SECURITY NOTES:
- JWT payloads are never logged
- Tokens are issued elsewhere; this service only verifies them
"""

from typing import Annotated, Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel
from datetime import datetime, timedelta, timezone
import logging

from app.config import settings
from app.exceptions import UnauthorizedError
from app.middleware.correlation import actor_id_ctx
from app.services.weekly_planning import PlanningSession
from app.store.registry import StoreRegistry

logger = logging.getLogger(__name__)


# HTTP Bearer for JWT
security = HTTPBearer(auto_error=False)


class Actor(BaseModel):
    """The authenticated planner; ``id`` is stamped on every write."""
    id: str
    email: Optional[str] = None


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token (used by tooling and tests)."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_actor(token: str) -> Optional[Actor]:
    """Verify a token and return its actor, None when it is not valid."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        # SECURITY: Don't log token decode errors with details
        logger.warning("JWT validation failed")
        return None
    sub = payload.get("sub")
    if sub is None or str(sub) == "":
        return None
    return Actor(id=str(sub), email=payload.get("email"))


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> Actor:
    """
    Resolve the bearer token into an Actor and publish its id to the
    correlation context so store writes and log records carry it.
    """
    if not credentials:
        raise UnauthorizedError()

    actor = decode_actor(credentials.credentials)
    if actor is None:
        raise UnauthorizedError("Could not validate credentials")

    actor_id_ctx.set(actor.id)
    logger.debug(f"Actor authenticated: {actor.id}")
    return actor


async def get_current_actor_ws(token: Optional[str]) -> Optional[Actor]:
    """WebSocket variant: the token arrives as a query parameter."""
    if not token:
        return None
    return decode_actor(token)


def get_registry(request: Request) -> StoreRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Stores are not ready")
    return registry


def get_planning_session(request: Request) -> PlanningSession:
    session = getattr(request.app.state, "planning_session", None)
    if session is None:
        session = PlanningSession()
        request.app.state.planning_session = session
    return session


# Type aliases for dependency injection
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
Registry = Annotated[StoreRegistry, Depends(get_registry)]
Session = Annotated[PlanningSession, Depends(get_planning_session)]
