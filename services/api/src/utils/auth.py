"""
Bearer-token verification.

Tokens come from an external identity provider: either an OIDC issuer whose
signing keys are fetched from a JWKS endpoint, or a service sharing an HMAC
secret with this API. Both yield the same claim set: ``sub`` (or the legacy
``userId``) and ``role``.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from pydantic import BaseModel

from . import log

logger = log.get_logger(__name__)

# Used when a token carries no exp claim
DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


class AuthClientConfig(BaseModel):
    jwk_url: Optional[str] = None
    audience: Optional[str] = None
    issuer: Optional[str] = None
    secret: Optional[str] = None
    algorithm: str = "HS256"


class AuthClient:
    def __init__(self, config: AuthClientConfig):
        if not config.jwk_url and not config.secret:
            raise ValueError("AuthClient needs either a JWKS URL or a shared secret")
        self.config = config
        self._jwk_client = jwt.PyJWKClient(config.jwk_url) if config.jwk_url else None

    def decode_jwt(self, token: str) -> Optional[Dict[str, Any]]:
        """Verify *token* and return its claims, or None if it is not acceptable."""
        options = {"verify_aud": bool(self.config.audience)}
        try:
            if self._jwk_client is not None:
                signing_key = self._jwk_client.get_signing_key_from_jwt(token)
                payload = jwt.decode(
                    token,
                    signing_key.key,
                    algorithms=["RS256", "ES256"],
                    audience=self.config.audience,
                    issuer=self.config.issuer,
                    options=options,
                )
            else:
                payload = jwt.decode(
                    token,
                    self.config.secret,
                    algorithms=[self.config.algorithm],
                    audience=self.config.audience,
                    issuer=self.config.issuer,
                    options=options,
                )
        except jwt.PyJWTError as e:
            logger.debug(f"Rejected bearer token: {e}")
            return None

        if "sub" not in payload and "userId" in payload:
            payload["sub"] = str(payload["userId"])
        return payload


def token_expires_at(payload: Dict[str, Any]) -> datetime:
    exp = payload.get("exp")
    if exp is None:
        return datetime.now(timezone.utc) + DEFAULT_TOKEN_LIFETIME
    return datetime.fromtimestamp(int(exp), tz=timezone.utc)
