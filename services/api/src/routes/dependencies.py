from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bidding.context import BiddingContext
from bidding.errors import BiddingError
from bidding.identity import Identity, resolve_identity
from utils import log

logger = log.get_logger(__name__)

# Missing credentials are reported by resolve_identity, not by FastAPI
security = HTTPBearer(auto_error=False)


def bidding_get(request: Request) -> BiddingContext:
    return request.app.state.bidding


def raise_http(e: BiddingError):
    raise HTTPException(status_code=e.status_code, detail=e.message) from e


async def current_user_get(
    ctx: BiddingContext = Depends(bidding_get),
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Identity:
    try:
        return await resolve_identity(
            token.credentials if token else None, ctx.verifier, ctx.revocations, ctx.users
        )
    except BiddingError as e:
        raise_http(e)


def require_role(*roles: str):
    async def _check(user: Identity = Depends(current_user_get)) -> Identity:
        if user.role not in roles:
            logger.warning(f"User {user.user_id} with role '{user.role}' denied; needs one of {roles}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied",
            )
        return user

    return _check


require_admin = require_role("admin")
require_dealer = require_role("dealer")
