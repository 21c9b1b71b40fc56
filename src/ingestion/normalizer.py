"""
Entity normalization for provider payloads.

Converts the tweet provider's offset-indexed entities (``indices: [start, end]``)
and Telegram's UTF-16 entity spans into the uniform positional entity model.

Rules:
- Each provider entity maps 1:1 to a positional entity; Twitter indices are
  copied verbatim.
- Telegram offsets count UTF-16 code units and are converted to code-point
  offsets against the stored text.
- Body text is stored exactly as received (HTML entities are not decoded) so
  offsets keep pointing at the right substring.
- Absent optional arrays become empty lists, except Telegram URLs which are
  stored as None when empty.
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from telethon.tl.types import (
    Channel,
    MessageEntityMention,
    MessageEntityTextUrl,
    MessageEntityUrl,
    MessageMediaPhoto,
)

from src.ingestion.schemas import (
    MediaEntity,
    Mention,
    TelegramChannel,
    TelegramMessage,
    Tweet,
    TwitterBio,
    TwitterUser,
    UrlEntity,
    telegram_message_key,
)

logger = structlog.get_logger(__name__)

# Legacy Twitter timestamp format, e.g. "Tue Dec 10 07:00:30 +0000 2024"
TWITTER_DATE_FORMAT = "%a %b %d %H:%M:%S %z %Y"

MEDIA_KINDS = {"photo", "video", "animated_gif"}


# Twitter


def parse_twitter_date(value: str | None) -> datetime:
    """Parse a provider timestamp (ISO 8601 or legacy Twitter format)."""
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        parsed = datetime.strptime(value, TWITTER_DATE_FORMAT)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _mentions(raw_mentions: list[dict[str, Any]] | None) -> list[Mention]:
    return [
        Mention(
            username=m["screen_name"],
            start_index=m["indices"][0],
            end_index=m["indices"][1],
        )
        for m in raw_mentions or []
    ]


def _urls(raw_urls: list[dict[str, Any]] | None) -> list[UrlEntity]:
    return [
        UrlEntity(
            display_url=u.get("display_url") or u.get("url", ""),
            expanded_url=u.get("expanded_url") or u.get("url", ""),
            start_index=u["indices"][0],
            end_index=u["indices"][1],
        )
        for u in raw_urls or []
    ]


def _media(raw_media: list[dict[str, Any]] | None) -> list[MediaEntity]:
    media: list[MediaEntity] = []
    for m in raw_media or []:
        kind = m.get("type", "photo")
        if kind not in MEDIA_KINDS:
            logger.debug("Unknown media type, treating as photo", media_type=kind)
            kind = "photo"
        # Prefer the "large" rendition; other sizes are thumbnails
        large = (m.get("sizes") or {}).get("large") or {}
        media.append(
            MediaEntity(
                url=m.get("media_url_https") or m.get("media_url", ""),
                kind=kind,
                width=large.get("w"),
                height=large.get("h"),
                start_index=m["indices"][0],
                end_index=m["indices"][1],
            )
        )
    return media


def _optional_id(value: Any) -> int | None:
    if value in (None, "", 0, "0"):
        return None
    return int(value)


def normalize_twitter_user(raw: dict[str, Any]) -> TwitterUser:
    """
    Normalize the provider's author object.

    Args:
        raw: ``tweet["author"]`` from the advanced search response

    Returns:
        TwitterUser with bio entities in positional form
    """
    profile_bio = raw.get("profile_bio") or {}
    bio_entities = profile_bio.get("entities") or {}

    bio = TwitterBio(
        description=profile_bio.get("description") or "",
        mentions=_mentions((bio_entities.get("description") or {}).get("user_mentions")),
        urls=_urls((bio_entities.get("url") or {}).get("urls")),
    )

    return TwitterUser(
        id=int(raw["id"]),
        username=raw["userName"],
        display_name=raw.get("name") or "",
        avatar_url=raw.get("profilePicture"),
        follower_count=raw.get("followers") or 0,
        following_count=raw.get("following") or 0,
        bio=bio,
    )


def normalize_tweet(raw: dict[str, Any]) -> Tweet:
    """
    Normalize one tweet from the advanced search response.

    Args:
        raw: Single element of the response's ``tweets`` array

    Returns:
        Tweet with flat positional entities
    """
    entities = raw.get("entities") or {}
    extended = raw.get("extendedEntities") or {}
    author = raw.get("author") or {}

    tweet_id = int(raw["id"])
    username = author.get("userName", "i")

    return Tweet(
        id=tweet_id,
        url=raw.get("url") or f"https://x.com/{username}/status/{tweet_id}",
        text=raw.get("text") or "",
        author_id=int(author["id"]),
        conversation_id=_optional_id(raw.get("conversationId")),
        created_at=parse_twitter_date(raw.get("createdAt")),
        mentions=_mentions(entities.get("user_mentions")),
        urls=_urls(entities.get("urls")),
        media=_media(extended.get("media")),
    )


def normalize_tweet_batch(
    raw_tweets: list[dict[str, Any]],
) -> tuple[list[TwitterUser], list[Tweet]]:
    """
    Normalize a page group of tweets into deduplicated users and tweets.

    The latest sighting of an author wins, so mutable profile fields reflect
    the most recently fetched page.

    Returns:
        Tuple of (users, tweets), both unique by id
    """
    users: dict[int, TwitterUser] = {}
    tweets: dict[int, Tweet] = {}

    for raw in raw_tweets:
        tweet = normalize_tweet(raw)
        users[tweet.author_id] = normalize_twitter_user(raw["author"])
        tweets.setdefault(tweet.id, tweet)

    return list(users.values()), list(tweets.values())


# Telegram


def utf16_to_codepoint(text: str, offset: int) -> int:
    """Convert a UTF-16 code unit offset into a code-point index of ``text``."""
    units = 0
    for index, char in enumerate(text):
        if units >= offset:
            return index
        units += 2 if ord(char) > 0xFFFF else 1
    return len(text)


def normalize_telegram_channel(full: Any, handle: str) -> TelegramChannel:
    """
    Normalize a ``channels.GetFullChannelRequest`` result.

    The first public username is the channel's own; any further usernames
    are recorded as admin usernames.

    Args:
        full: ``messages.ChatFull`` returned by Telethon
        handle: Handle used to look the channel up (fallback username)
    """
    full_chat = full.full_chat
    chat = next(
        (c for c in full.chats if isinstance(c, Channel) and c.id == full_chat.id),
        None,
    )
    if chat is None:
        chat = next((c for c in full.chats if isinstance(c, Channel)), None)

    usernames = [u.username for u in (getattr(chat, "usernames", None) or [])]
    if not usernames and getattr(chat, "username", None):
        usernames = [chat.username]

    return TelegramChannel(
        id=int(full_chat.id),
        title=getattr(chat, "title", None) or "",
        about=full_chat.about or None,
        channel_username=usernames[0] if usernames else handle,
        admin_usernames=usernames[1:],
    )


def normalize_telegram_message(
    raw: Any,
    channel: TelegramChannel,
) -> TelegramMessage | None:
    """
    Normalize a Telethon message from a channel's history.

    Args:
        raw: ``telethon.tl.custom.Message``
        channel: Channel the message belongs to

    Returns:
        TelegramMessage without ``thread_id``, or None for messages with no
        text (service messages, bare media)
    """
    # Raw text, not the markdown-rendered ``.text`` property
    text = raw.message
    if not text:
        return None

    mentions: list[Mention] = []
    urls: list[UrlEntity] = []

    for entity in raw.entities or []:
        start = utf16_to_codepoint(text, entity.offset)
        end = utf16_to_codepoint(text, entity.offset + entity.length)
        if start >= end:
            logger.debug(
                "Skipping empty entity span",
                message_id=raw.id,
                entity=type(entity).__name__,
            )
            continue

        if isinstance(entity, MessageEntityTextUrl):
            urls.append(UrlEntity(
                display_url=entity.url,
                expanded_url=entity.url,
                start_index=start,
                end_index=end,
            ))
        elif isinstance(entity, MessageEntityUrl):
            covered = text[start:end]
            urls.append(UrlEntity(
                display_url=covered,
                expanded_url=covered,
                start_index=start,
                end_index=end,
            ))
        elif isinstance(entity, MessageEntityMention):
            mentions.append(Mention(
                username=text[start:end].lstrip("@"),
                start_index=start,
                end_index=end,
            ))

    reply_to = getattr(raw, "reply_to", None)
    reply_to_message_id = getattr(reply_to, "reply_to_msg_id", None)

    created_at = raw.date
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)

    return TelegramMessage(
        id=telegram_message_key(channel.id, raw.id),
        message_id=raw.id,
        channel_id=channel.id,
        url=f"https://t.me/{channel.channel_username}/{raw.id}",
        text=text,
        reply_to_message_id=reply_to_message_id,
        created_at=created_at,
        has_media=isinstance(raw.media, MessageMediaPhoto),
        mentions=mentions,
        urls=urls or None,
    )
