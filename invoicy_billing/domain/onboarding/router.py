"""Onboarding router - Stripe connected account setup for merchants"""

import asyncio
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import CallerIdentity, get_current_user
from ...config import APP_URL
from ...database import get_db, get_service_db
from ...responses import error_response
from ..payments.router import get_stripe_gateway
from ..payments.stripe_gateway import StripeGateway
from .schemas import AccountLinkResponse, OnboardingStatusResponse
from .service import AccountOnboardingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["Onboarding"])


def get_onboarding_service(
    caller_db: Session = Depends(get_db),
    service_db: Session = Depends(get_service_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> AccountOnboardingService:
    """Dependency injection for AccountOnboardingService"""
    return AccountOnboardingService(caller_db, service_db, gateway, APP_URL)


@router.post("/account-link", response_model=AccountLinkResponse)
async def create_account_link(
    user: CallerIdentity = Depends(get_current_user),
    service: AccountOnboardingService = Depends(get_onboarding_service),
):
    """Ensure the caller has a connected account and return a fresh onboarding URL"""
    result = await asyncio.to_thread(service.ensure_account, user.uid, user.email)
    if not result.is_ok:
        return error_response(result.error)
    return AccountLinkResponse(url=result.value)


@router.post("/status", response_model=OnboardingStatusResponse)
async def get_onboarding_status(
    user: CallerIdentity = Depends(get_current_user),
    service: AccountOnboardingService = Depends(get_onboarding_service),
):
    """Refresh and return whether the caller can accept payments"""
    result = await asyncio.to_thread(service.refresh_status, user.uid)
    if not result.is_ok:
        return error_response(result.error)
    return OnboardingStatusResponse(setup_complete=result.value)
