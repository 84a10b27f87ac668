from fastapi import APIRouter
from tierguard.api.v1.routes import access, billing, pages, session, subscriptions

api_router = APIRouter()

api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
api_router.include_router(access.router, prefix="/access", tags=["access"])
api_router.include_router(session.router, prefix="/session", tags=["session"])
api_router.include_router(pages.router, prefix="/pages", tags=["pages"])
