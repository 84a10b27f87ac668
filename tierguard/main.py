from contextlib import asynccontextmanager
from datetime import timedelta
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from tierguard.core.config import settings
from tierguard.core.exceptions import TierguardError
from tierguard.core.firebase import init_firebase
from tierguard.core.rate_limit_middleware import RateLimitMiddleware
from tierguard.api.v1.router import api_router
from tierguard.services.identity_service import IdentityService
from tierguard.services.subscription_fetcher import StripeSubscriptionFetcher
from tierguard.services.subscription_poller import SubscriptionPoller
from tierguard.services.subscription_resolver import SubscriptionResolver
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_firebase()

    resolver = SubscriptionResolver(
        StripeSubscriptionFetcher(),
        max_age=timedelta(seconds=settings.subscription_poll_seconds),
    )
    poller = SubscriptionPoller(
        resolver,
        interval_seconds=settings.subscription_poll_seconds,
        idle_minutes=settings.subscription_poll_idle_minutes,
    )
    app.state.subscription_resolver = resolver
    app.state.identity_service = IdentityService()
    app.state.subscription_poller = poller

    poller.start()
    logger.info("lifespan: Startup complete")
    try:
        yield
    finally:
        await poller.stop()
        logger.info("lifespan: Shutdown complete")


app = FastAPI(
    title="Tierguard API",
    version="1.0.0",
    debug=settings.debug,
    redirect_slashes=False,
    lifespan=lifespan,
)

# Add CORS middleware (must be first, before rate limiting)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RateLimitMiddleware)

app.include_router(api_router, prefix=settings.api_v1_str)


@app.exception_handler(TierguardError)
async def tierguard_error_handler(request: Request, exc: TierguardError):
    logger.info(f"tierguard_error_handler: {exc.code} - {request.url.path}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
