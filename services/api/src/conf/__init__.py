from typing import Literal

from pydantic import BaseModel

from utils import auth, env, log
from utils.env import EnvVarSpec

logger = log.get_logger(__name__)

#### Types ####

class HttpServerConf(BaseModel):
    host: str
    port: int
    autoreload: bool

class BiddingConf(BaseModel):
    timezone: str
    rate_limit_max_bids: int
    rate_limit_window_minutes: int
    placement_timeout_seconds: float
    sweep_interval_seconds: int

#### Env Vars ####

## Auth ##

AUTH_JWT_SECRET = EnvVarSpec(id="AUTH_JWT_SECRET", is_optional=True, is_secret=True)
AUTH_JWT_ALGORITHM = EnvVarSpec(id="AUTH_JWT_ALGORITHM", default="HS256")
AUTH_OIDC_JWK_URL = EnvVarSpec(id="AUTH_OIDC_JWK_URL", is_optional=True)
AUTH_OIDC_AUDIENCE = EnvVarSpec(id="AUTH_OIDC_AUDIENCE", is_optional=True)
AUTH_OIDC_ISSUER = EnvVarSpec(id="AUTH_OIDC_ISSUER", is_optional=True)

## Logging ##

LOG_LEVEL = EnvVarSpec(id="LOG_LEVEL", default="INFO")

## HTTP ##

HTTP_HOST = EnvVarSpec(id="HTTP_HOST", default="0.0.0.0")

HTTP_PORT = EnvVarSpec(id="HTTP_PORT", default="8000", parse=int, type=(int, ...))

HTTP_AUTORELOAD = EnvVarSpec(
    id="HTTP_AUTORELOAD",
    parse=lambda x: x.lower() == "true",
    default="false",
    type=(bool, ...),
)

HTTP_EXPOSE_ERRORS = EnvVarSpec(
    id="HTTP_EXPOSE_ERRORS",
    default="false",
    parse=lambda x: x.lower() == "true",
    type=(bool, ...),
)

## Storage ##

STORAGE_BACKEND = EnvVarSpec(
    id="STORAGE_BACKEND",
    default="couchbase",
    parse=lambda x: x.lower(),
    type=(Literal["couchbase", "memory"], ...),
)

## Bidding ##

AUCTION_TIMEZONE = EnvVarSpec(id="AUCTION_TIMEZONE", default="Asia/Kolkata")

BID_RATE_LIMIT_MAX_BIDS = EnvVarSpec(
    id="BID_RATE_LIMIT_MAX_BIDS",
    default="3",
    parse=int,
    type=(int, ...),
)

BID_RATE_LIMIT_WINDOW_MINUTES = EnvVarSpec(
    id="BID_RATE_LIMIT_WINDOW_MINUTES",
    default="30",
    parse=int,
    type=(int, ...),
)

BID_PLACEMENT_TIMEOUT_SECONDS = EnvVarSpec(
    id="BID_PLACEMENT_TIMEOUT_SECONDS",
    default="5",
    parse=float,
    type=(float, ...),
)

EXPIRY_SWEEP_INTERVAL_SECONDS = EnvVarSpec(
    id="EXPIRY_SWEEP_INTERVAL_SECONDS",
    default="60",
    parse=int,
    type=(int, ...),
)

#### Validation ####
VALIDATED_ENV_VARS = [
    AUTH_JWT_SECRET,
    AUTH_JWT_ALGORITHM,
    AUTH_OIDC_JWK_URL,
    AUTH_OIDC_AUDIENCE,
    AUTH_OIDC_ISSUER,
    HTTP_AUTORELOAD,
    HTTP_EXPOSE_ERRORS,
    HTTP_PORT,
    LOG_LEVEL,
    STORAGE_BACKEND,
    AUCTION_TIMEZONE,
    BID_RATE_LIMIT_MAX_BIDS,
    BID_RATE_LIMIT_WINDOW_MINUTES,
    BID_PLACEMENT_TIMEOUT_SECONDS,
    EXPIRY_SWEEP_INTERVAL_SECONDS,
]

def validate() -> bool:
    ok = env.validate(VALIDATED_ENV_VARS)
    if not env.parse(AUTH_JWT_SECRET) and not env.parse(AUTH_OIDC_JWK_URL):
        logger.error("Set AUTH_JWT_SECRET or AUTH_OIDC_JWK_URL to verify bearer tokens")
        ok = False
    return ok

#### Getters ####

def get_auth_config() -> auth.AuthClientConfig:
    """Get authentication configuration."""
    return auth.AuthClientConfig(
        jwk_url=env.parse(AUTH_OIDC_JWK_URL),
        audience=env.parse(AUTH_OIDC_AUDIENCE),
        issuer=env.parse(AUTH_OIDC_ISSUER),
        secret=env.parse(AUTH_JWT_SECRET),
        algorithm=env.parse(AUTH_JWT_ALGORITHM),
    )

def get_http_expose_errors() -> bool:
    return env.parse(HTTP_EXPOSE_ERRORS)

def get_log_level() -> str:
    return env.parse(LOG_LEVEL)

def get_storage_backend() -> str:
    return env.parse(STORAGE_BACKEND)

def get_http_conf() -> HttpServerConf:
    return HttpServerConf(
        host=env.parse(HTTP_HOST),
        port=env.parse(HTTP_PORT),
        autoreload=env.parse(HTTP_AUTORELOAD),
    )

def get_bidding_conf() -> BiddingConf:
    return BiddingConf(
        timezone=env.parse(AUCTION_TIMEZONE),
        rate_limit_max_bids=max(1, env.parse(BID_RATE_LIMIT_MAX_BIDS)),
        rate_limit_window_minutes=max(1, env.parse(BID_RATE_LIMIT_WINDOW_MINUTES)),
        placement_timeout_seconds=max(0.1, env.parse(BID_PLACEMENT_TIMEOUT_SECONDS)),
        sweep_interval_seconds=max(1, env.parse(EXPIRY_SWEEP_INTERVAL_SECONDS)),
    )
