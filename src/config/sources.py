"""
Curated list of sources to archive.

Override via the SOURCES environment variable as comma-separated
``platform:handle`` pairs (e.g. ``twitter:zachxbt,telegram:investigations``).
"""

from src.ingestion.schemas import Platform, Source

# On-chain investigator accounts
TWITTER_ACCOUNTS = [
    "zachxbt",
]

# Public Telegram channels (by @username)
TELEGRAM_CHANNELS = [
    "investigations",
]

DEFAULT_SOURCES = [
    Source(platform=Platform.TWITTER, handle=handle) for handle in TWITTER_ACCOUNTS
] + [
    Source(platform=Platform.TELEGRAM, handle=handle) for handle in TELEGRAM_CHANNELS
]


def get_default_sources() -> list[Source]:
    """
    Get the default list of sources to archive.

    Returns:
        List of Source entries
    """
    return DEFAULT_SOURCES.copy()


def parse_source(value: str) -> Source:
    """
    Parse a single ``platform:handle`` pair.

    Raises:
        ValueError: If the pair is malformed or the platform is unknown
    """
    platform, sep, handle = value.strip().partition(":")
    handle = handle.strip().lstrip("@")
    if not sep or not handle:
        raise ValueError(f"Invalid source '{value}', expected platform:handle")

    try:
        return Source(platform=Platform(platform.strip().lower()), handle=handle)
    except ValueError as e:
        raise ValueError(f"Unknown platform in source '{value}'") from e


def parse_sources(sources_str: str | None) -> list[Source]:
    """
    Parse comma-separated sources string into a list.

    Args:
        sources_str: Comma-separated pairs (e.g., "twitter:a,telegram:b")

    Returns:
        List of unique sources in input order, or the default list if
        input is None/empty
    """
    if not sources_str or not sources_str.strip():
        return get_default_sources()

    parsed: list[Source] = []
    for part in sources_str.split(","):
        if not part.strip():
            continue
        source = parse_source(part)
        if source not in parsed:
            parsed.append(source)
    return parsed
