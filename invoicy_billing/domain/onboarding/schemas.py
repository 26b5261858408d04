"""Onboarding domain schemas"""

from pydantic import BaseModel, ConfigDict, Field


class AccountLinkResponse(BaseModel):
    url: str


class OnboardingStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    setup_complete: bool = Field(alias="setupComplete")
