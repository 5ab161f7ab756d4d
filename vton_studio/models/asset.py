"""Selectable image asset models."""

from pydantic import BaseModel, Field


class ImageAsset(BaseModel):
    """A selectable person or clothing image."""

    model_config = {"frozen": True}

    id: str = Field(description="Unique within its catalog, e.g. 'upload-person-3'")
    display_location: str = Field(description="http(s) URL, blob: handle, data: URL or file path")
    cached_payload: str | None = Field(
        default=None,
        description="Base64 payload (no prefix) decoding to the same image as display_location",
    )
    is_user_provided: bool = False
