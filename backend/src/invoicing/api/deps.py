"""FastAPI dependencies for database sessions and authentication."""
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from invoicing.auth.jwt import actor_from_claims, jwt_auth
from invoicing.auth.policy import PUBLIC_ACTOR, Actor
from invoicing.database import get_db  # noqa: F401
from invoicing.exceptions import BadRequestError, ForbiddenError

logger = structlog.get_logger(__name__)

# HTTP Bearer token security scheme; missing credentials are handled below
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """
    Get the authenticated caller from the JWT bearer token.

    Returns:
        Actor: Caller email and company memberships

    Raises:
        HTTPException: If token is invalid, expired, or missing
    """
    if not credentials:
        raise _unauthorized("Authentication required")

    token = credentials.credentials
    try:
        payload = jwt_auth.verify_access_token(token)
    except jwt.ExpiredSignatureError:
        logger.warning("token_expired")
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("invalid_token", error=str(e))
        raise _unauthorized("Invalid authentication token")

    return actor_from_claims(payload)


async def get_optional_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """
    Get the caller if authenticated, otherwise the anonymous public actor.

    Used by the public B2B invoice link (view and confirm).
    """
    if not credentials:
        return PUBLIC_ACTOR
    return await get_current_actor(credentials)


async def get_company_id(
    actor: Actor = Depends(get_current_actor),
    x_company_id: Optional[int] = Header(default=None),
) -> int:
    """
    Company the request acts for.

    Taken from the ``X-Company-Id`` header; defaults to the caller's only
    company when the caller belongs to exactly one.

    Raises:
        BadRequestError: If no company can be determined
        ForbiddenError: If the caller is not a member of the requested company
    """
    if x_company_id is None:
        if len(actor.company_ids) == 1:
            return next(iter(actor.company_ids))
        raise BadRequestError("X-Company-Id header is required")
    if not actor.is_member(x_company_id):
        raise ForbiddenError("You do not have access to this company")
    return x_company_id
