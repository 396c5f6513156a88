from contextlib import asynccontextmanager
from pathlib import Path

import conf
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routes.base import router
from utils import auth, log

from bidding.context import build_couchbase_context, build_memory_context
from bidding.scheduler import init_scheduler, shutdown_scheduler
from clients.broadcast import ConnectionHub
from clients.couchbase import check_connection

log.init(conf.get_log_level())
logger = log.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = conf.get_storage_backend()
    bidding_conf = conf.get_bidding_conf()
    verifier = auth.AuthClient(conf.get_auth_config())
    hub = ConnectionHub()

    if backend == "couchbase":
        # Check database connection
        logger.info("Verifying Couchbase connection...")
        await check_connection()
        logger.info("Couchbase connection verified.")
        ctx = build_couchbase_context(bidding_conf, verifier, hub)
    else:
        logger.warning("Using in-memory storage: state is lost on restart and not shared between instances")
        ctx = build_memory_context(bidding_conf, verifier, hub)

    app.state.storage_backend = backend
    app.state.auth_client = verifier
    app.state.hub = hub
    app.state.bidding = ctx

    init_scheduler(ctx.sweeper, bidding_conf.sweep_interval_seconds)

    yield

    shutdown_scheduler()
    await ctx.publisher.drain()


app = FastAPI(
    title="Auction API",
    version="0.1.0",
    docs_url="/docs",
    lifespan=lifespan,
    debug=conf.get_http_expose_errors(),
)

app.include_router(router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if not conf.validate():
    raise ValueError("Invalid configuration.")

http_conf = conf.get_http_conf()
logger.info(f"Starting API on port {http_conf.port}")

logger.info("--- Registered Routes ---")
for route in app.routes:
    methods_set = getattr(route, "methods", None)
    methods = ", ".join(methods_set) if methods_set else "Any"
    path = getattr(route, "path", "<unknown>")
    logger.info(f"{path} [{methods}]")
logger.info("-------------------------")

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=http_conf.host,
        port=http_conf.port,
        reload=http_conf.autoreload,
        log_level="info",
        reload_dirs=[str(Path(__file__).parent), "/models", "/clients"],
        log_config=None,
    )
