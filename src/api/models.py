"""
Request and response models for the archive API.

Feed items reuse the ingestion schema and add the embedded author or channel
object. Health fields are serialized in camelCase to keep the wire contract
used by existing clients.
"""

import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.ingestion.schemas import TelegramChannel, TelegramMessage, Tweet, TwitterUser


class TweetItem(Tweet):
    """Archived tweet with its author embedded."""

    author: TwitterUser


class MessageItem(TelegramMessage):
    """Archived channel message with its channel embedded."""

    channel: TelegramChannel


class FeedResponse(BaseModel):
    """Response model for /search and /home."""

    tweets: list[TweetItem] = Field(default_factory=list)
    messages: list[MessageItem] = Field(default_factory=list)
    error: str | None = Field(
        default=None,
        description="Present only when the request failed",
    )


class SyncResponse(BaseModel):
    """Response model for /sync and /backfill."""

    message: str = Field(..., description="Empty when any source failed")
    inserted: dict[str, int] = Field(
        default_factory=dict,
        description="Items submitted to storage per platform",
    )
    error: str | None = Field(
        default=None,
        description="Failed sources and their errors",
    )


class HealthResponse(BaseModel):
    """Response model for health check."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["ok", "error"]
    database_connected: bool = Field(..., serialization_alias="databaseConnected")
    feed_api_configured: bool = Field(..., serialization_alias="feedApiConfigured")
    telegram_configured: bool = Field(..., serialization_alias="telegramConfigured")
    environment: str
    timestamp: dt.datetime


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
