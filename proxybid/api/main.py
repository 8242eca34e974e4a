from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from proxybid import __version__
from proxybid.api import conf
from proxybid.api.routes.base import router
from proxybid.clients import configure_backend
from proxybid.core.notifications import (
    LoggingNotifier,
    NotificationDispatcher,
    WebhookNotifier,
    get_dispatcher,
    set_dispatcher,
)
from proxybid.errors import AuctionEngineError
from proxybid.utils import log

log.init(conf.get_log_level(), conf.get_environment())
logger = log.get_logger(__name__)


def _init_notifications() -> NotificationDispatcher:
    url = conf.get_notify_webhook_url()
    if url:
        notifier = WebhookNotifier(url, timeout=conf.get_notify_timeout())
        logger.info(f"Notifications delivered to webhook {url}")
    else:
        notifier = LoggingNotifier()
        logger.warning("NOTIFY_WEBHOOK_URL not set, notifications are only logged")
    dispatcher = NotificationDispatcher(notifier)
    set_dispatcher(dispatcher)
    return dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = conf.get_store_backend()
    configure_backend(backend)
    if backend == "couchbase":
        from proxybid.clients.couchbase import check_connection

        logger.info("Verifying Couchbase connection...")
        await check_connection()
        logger.info("Couchbase connection verified.")
    else:
        logger.warning("Using in-memory store, data is lost on restart")

    _init_notifications()

    lifecycle = conf.get_lifecycle_conf()
    from proxybid.api.scheduler import init_scheduler, shutdown_scheduler

    if lifecycle.enabled:
        init_scheduler(lifecycle.tick_seconds, lifecycle.max_concurrency)
    else:
        logger.warning("Auction lifecycle scheduler is disabled (LIFECYCLE_ENABLED=false)")

    yield

    await shutdown_scheduler()
    await get_dispatcher().drain(timeout=conf.get_notify_timeout())


def create_app() -> FastAPI:
    app = FastAPI(
        title="Proxy Bid Auction API",
        version=__version__,
        docs_url="/docs",
        lifespan=lifespan,
        debug=conf.get_http_expose_errors(),
    )

    @app.exception_handler(AuctionEngineError)
    async def auction_error_handler(request: Request, exc: AuctionEngineError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


if not conf.validate():
    raise ValueError("Invalid configuration.")

app = create_app()

http_conf = conf.get_http_conf()

logger.info("--- Registered Routes ---")
for route in app.routes:
    methods_set = getattr(route, "methods", None)
    methods = ", ".join(sorted(methods_set)) if methods_set else "Any"
    path = getattr(route, "path", "<unknown>")
    logger.info(f"{path} [{methods}]")
logger.info("-------------------------")


def run():
    logger.info(f"Starting API on port {http_conf.port}")
    uvicorn.run(
        "proxybid.api.main:app",
        host=http_conf.host,
        port=http_conf.port,
        reload=http_conf.autoreload,
        log_level="info",
        log_config=None,
    )


if __name__ == "__main__":
    run()
