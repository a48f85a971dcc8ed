"""Pydantic API schemas for the courier HTTP boundary.

Order bodies are accepted as free-form JSON and checked by the order
validator, so rejections carry the same messages on every entry point.
"""

from pydantic import BaseModel, Field


class CancelParcelRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    requested_by: str | None = None


class QueuedResponse(BaseModel):
    queued: bool
    channel: str
    delivery_id: str | None = None
