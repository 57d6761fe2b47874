"""Rate limit inspection and administration endpoints."""

import hmac
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from agentgate.app.core.config import Settings
from agentgate.app.core.logging import get_log_context, get_logger
from agentgate.app.exceptions import AuthenticationError
from agentgate.app.middleware.rate_limit import (
    LimiterRegistry,
    get_client_identifier,
    get_limiter_registry,
    require_rate_limit,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/rate-limit", tags=["rate-limit"])


class LimiterStatusResponse(BaseModel):
    """Quota snapshot for one limiter."""

    limit: int
    remaining: int
    reset: int  # epoch seconds


class RateLimitStatusResponse(BaseModel):
    identifier: str
    limiters: Dict[str, LimiterStatusResponse]


class ResetRequest(BaseModel):
    """Reset request. Omitting ``limiter`` clears the identifier everywhere."""

    identifier: str = Field(..., min_length=1, max_length=512)
    limiter: Optional[str] = None


class ResetResponse(BaseModel):
    reset: List[str]


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_admin_token(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Allow the request only with a matching X-Admin-Token header.

    Raises:
        HTTPException: 404 when no admin token is configured
        AuthenticationError: When the header is missing or wrong
    """
    if not settings.admin_token:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    supplied = request.headers.get("x-admin-token", "")
    if not hmac.compare_digest(supplied.encode(), settings.admin_token.encode()):
        raise AuthenticationError()


@router.get("/status", response_model=RateLimitStatusResponse)
async def get_rate_limit_status(
    request: Request,
    registry: LimiterRegistry = Depends(get_limiter_registry),
) -> RateLimitStatusResponse:
    """Report the caller's remaining quota on every limiter without consuming it."""
    identifier = get_client_identifier(request, getattr(request.state, "user_id", None))
    limiters = {}
    for name, limiter in registry:
        snapshot = limiter.get_status(identifier)
        limiters[name] = LimiterStatusResponse(
            limit=snapshot.limit,
            remaining=snapshot.remaining,
            reset=snapshot.reset_epoch_seconds,
        )
    return RateLimitStatusResponse(identifier=identifier, limiters=limiters)


@router.post(
    "/reset",
    response_model=ResetResponse,
    dependencies=[Depends(require_rate_limit("strict")), Depends(require_admin_token)],
)
async def reset_rate_limit(
    body: ResetRequest,
    registry: LimiterRegistry = Depends(get_limiter_registry),
) -> ResetResponse:
    """Clear an identifier's quota in one or all limiters."""
    if body.limiter is None:
        names = registry.names()
    elif body.limiter in registry:
        names = [body.limiter]
    else:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown rate limiter: {body.limiter}",
        )

    for name in names:
        registry.get(name).reset(body.identifier)

    logger.info(
        "Rate limit reset",
        extra=get_log_context(identifier=body.identifier, limiter=",".join(names)),
    )
    return ResetResponse(reset=names)
