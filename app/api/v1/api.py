# app/api/v1/api.py

from fastapi import APIRouter
from app.api.v1.endpoints import (
    workshops,
    waitlist,
    registrations,
    refunds,
    onboarding,
    webhooks,
)

api_router = APIRouter()

api_router.include_router(workshops.router)
api_router.include_router(waitlist.router)
api_router.include_router(registrations.router)
api_router.include_router(refunds.router)
api_router.include_router(onboarding.router)
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
