from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from .errors import Forbidden, Unauthorized
from .stores import RevocationList, UserDirectory


class TokenVerifier(Protocol):
    def decode_jwt(self, token: str) -> Optional[Dict[str, Any]]: ...


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str
    token: str
    claims: Dict[str, Any]


async def resolve_identity(
    credential: Optional[str],
    verifier: TokenVerifier,
    revocations: RevocationList,
    users: UserDirectory,
) -> Identity:
    """Turn a bearer credential into the caller's identity.

    Missing, undecodable or orphaned credentials are ``Unauthorized``; a
    credential revoked by logout is ``Forbidden`` even if otherwise valid, and
    so is an account an admin has not approved yet.
    """
    if not credential:
        raise Unauthorized("Unauthorized! Please log in to place a bid.")

    claims = verifier.decode_jwt(credential)
    if not claims or not claims.get("sub"):
        raise Unauthorized("Invalid token! Please log in again.")

    if await revocations.is_revoked(credential):
        raise Forbidden("You are logged out! Please log in again.")

    user = await users.get(str(claims["sub"]))
    if not user:
        raise Unauthorized("Invalid token! Please log in again.")
    if not user.data.is_approved:
        raise Forbidden("Admin approval required. Please wait for approval.")

    return Identity(
        user_id=user.id,
        role=user.data.role,
        token=credential,
        claims=claims,
    )
