"""Recurrence domain schemas"""

from pydantic import BaseModel, ConfigDict, Field


class RecurrenceRunResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    created_count: int = Field(alias="createdCount")
    skipped: bool = False
    period: str
