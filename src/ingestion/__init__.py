"""Data ingestion module - provider clients, normalization, and thread resolution."""

from src.ingestion.schemas import (
    Platform,
    Source,
    SyncMode,
    TelegramChannel,
    TelegramMessage,
    Tweet,
    TwitterUser,
)

__all__ = [
    "Platform",
    "Source",
    "SyncMode",
    "TelegramChannel",
    "TelegramMessage",
    "Tweet",
    "TwitterUser",
]
