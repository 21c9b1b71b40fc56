"""
Canonical archive schema for the thread-archive pipeline.

All provider payloads are normalized into these models before they reach
storage. Positional entities (mentions, URLs, media) carry half-open
``[start_index, end_index)`` code-point offsets into the owning item's raw
body text, exactly as stored.
"""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Platform(str, Enum):
    """Supported source platforms."""

    TWITTER = "twitter"
    TELEGRAM = "telegram"


class SyncMode(str, Enum):
    """
    Direction of a sync run.

    BACKFILL walks backward from now toward the oldest known item.
    INCREMENTAL walks forward from the newest known item.
    """

    BACKFILL = "backfill"
    INCREMENTAL = "incremental"


class Source(BaseModel):
    """A feed to archive: a Twitter username or a Telegram channel handle."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    handle: str = Field(..., min_length=1)

    @property
    def label(self) -> str:
        return f"{self.platform.value}:{self.handle}"


# Positional entities


class PositionalEntity(BaseModel):
    """Base for entities anchored to a span of the body text."""

    start_index: int = Field(..., ge=0)
    end_index: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_span(self) -> "PositionalEntity":
        if self.start_index >= self.end_index:
            raise ValueError(
                f"start_index ({self.start_index}) must be less than "
                f"end_index ({self.end_index})"
            )
        return self

    def span_of(self, text: str) -> str:
        """Return the substring of ``text`` this entity covers."""
        return text[self.start_index:self.end_index]


class Mention(PositionalEntity):
    username: str


class UrlEntity(PositionalEntity):
    display_url: str
    expanded_url: str


class MediaEntity(PositionalEntity):
    url: str
    kind: Literal["photo", "video", "animated_gif"]
    width: int | None = None
    height: int | None = None


# Twitter


class TwitterBio(BaseModel):
    """Profile description with its own positional entities."""

    description: str = ""
    mentions: list[Mention] = Field(default_factory=list)
    urls: list[UrlEntity] = Field(default_factory=list)


class TwitterUser(BaseModel):
    """
    Author identity. Mutable fields (counts, bio, avatar) are overwritten
    on every sighting; ``id`` is the natural key.
    """

    id: int
    username: str
    display_name: str = ""
    avatar_url: str | None = None
    follower_count: int = Field(default=0, ge=0)
    following_count: int = Field(default=0, ge=0)
    bio: TwitterBio = Field(default_factory=TwitterBio)


class Tweet(BaseModel):
    """Archived tweet. Immutable once written."""

    id: int
    url: str
    text: str
    author_id: int
    conversation_id: int | None = None
    created_at: datetime
    mentions: list[Mention] = Field(default_factory=list)
    urls: list[UrlEntity] = Field(default_factory=list)
    media: list[MediaEntity] = Field(default_factory=list)

    @property
    def thread_key(self) -> int:
        """Conversation this tweet belongs to; a singleton when unknown."""
        return self.conversation_id if self.conversation_id is not None else self.id


# Telegram


class TelegramChannel(BaseModel):
    id: int
    title: str = ""
    about: str | None = None
    channel_username: str
    admin_usernames: list[str] = Field(default_factory=list)


def telegram_message_key(channel_id: int, message_id: int) -> str:
    """Composite key for a Telegram message (ids are unique per channel only)."""
    return f"{channel_id}-{message_id}"


class TelegramMessage(BaseModel):
    """
    Archived channel message.

    ``thread_id`` is computed by the thread resolver at write time and is
    the composite id of the thread root. ``urls`` is None (not empty) when
    the message carries no links.
    """

    id: str
    message_id: int
    channel_id: int
    url: str
    text: str
    reply_to_message_id: int | None = None
    created_at: datetime
    has_media: bool = False
    mentions: list[Mention] = Field(default_factory=list)
    urls: list[UrlEntity] | None = None
    thread_id: str | None = None
