"""Generation history models."""

from datetime import datetime

from pydantic import BaseModel, Field


class HistoryRecord(BaseModel):
    """One completed try-on generation. Immutable once created."""

    model_config = {"frozen": True}

    id: str
    person_image_ref: str
    clothing_image_ref: str
    result_image_ref: str = Field(description="data: URL of the generated try-on")
    created_at: datetime = Field(default_factory=datetime.now)
