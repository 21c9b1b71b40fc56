"""
Thread root resolution for Telegram reply chains.

Every incoming message gets a ``thread_id`` equal to the id of the oldest
ancestor in its reply chain. Ancestors may already be persisted or may be
part of the same incoming batch, so resolution runs in two stages:

1. Anchors. A message is anchored when it has no parent, when its parent is
   persisted (root = parent's thread_id, or the parent's id if the parent is
   itself a root), or when its parent is neither persisted nor in the batch
   (the parent was never ingested; the message becomes its own root).
2. Propagation. Breadth-first over the batch-local reply edges starting from
   the anchors; each child inherits its parent's root.

Propagation is capped at ``max_depth`` hops. Anything not reached (chains
deeper than the cap, reply cycles, self-replies) is reported as unresolved
so the caller can log it and store those messages as singleton threads.
"""

from collections import defaultdict, deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from src.ingestion.schemas import TelegramMessage

DEFAULT_MAX_DEPTH = 50


@dataclass(frozen=True)
class PersistedParent:
    """An already-stored message that incoming replies may point at."""

    id: str
    thread_id: str | None = None

    @property
    def root(self) -> str:
        return self.thread_id or self.id


@dataclass
class ThreadResolution:
    """Outcome of resolving one batch."""

    thread_ids: dict[str, str] = field(default_factory=dict)
    unresolved: list[str] = field(default_factory=list)
    depths: dict[str, int] = field(default_factory=dict)

    @property
    def max_depth_seen(self) -> int:
        return max(self.depths.values(), default=0)


def parent_ids(messages: Iterable[TelegramMessage]) -> list[int]:
    """Distinct reply-parent message ids referenced by a batch."""
    return sorted({
        m.reply_to_message_id
        for m in messages
        if m.reply_to_message_id is not None
    })


def resolve_threads(
    messages: list[TelegramMessage],
    persisted_parents: Mapping[int, PersistedParent],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> ThreadResolution:
    """
    Compute the thread root of every message in a single-channel batch.

    Args:
        messages: Incoming messages (one channel, any order)
        persisted_parents: Stored messages keyed by their in-channel
            ``message_id``; only entries for the batch's reply pointers
            are needed
        max_depth: Maximum number of in-batch hops from an anchor

    Returns:
        ThreadResolution. ``thread_ids`` always has an entry for every
        message: unresolved ones map to themselves.
    """
    by_message_id: dict[int, TelegramMessage] = {}
    for message in messages:
        by_message_id.setdefault(message.message_id, message)

    children: dict[int, list[TelegramMessage]] = defaultdict(list)
    resolution = ThreadResolution()
    queue: deque[tuple[TelegramMessage, int]] = deque()

    for message in by_message_id.values():
        parent_id = message.reply_to_message_id

        if parent_id is None:
            root = message.id
        elif parent_id in persisted_parents:
            root = persisted_parents[parent_id].root
        elif parent_id in by_message_id:
            children[parent_id].append(message)
            continue
        else:
            # Parent never ingested (deleted upstream or outside the window)
            root = message.id

        resolution.thread_ids[message.id] = root
        resolution.depths[message.id] = 0
        queue.append((message, 0))

    while queue:
        parent, depth = queue.popleft()
        if depth >= max_depth:
            continue
        root = resolution.thread_ids[parent.id]
        for child in children.get(parent.message_id, ()):
            if child.id in resolution.thread_ids:
                continue
            resolution.thread_ids[child.id] = root
            resolution.depths[child.id] = depth + 1
            queue.append((child, depth + 1))

    for message in by_message_id.values():
        if message.id not in resolution.thread_ids:
            resolution.unresolved.append(message.id)
            resolution.thread_ids[message.id] = message.id

    return resolution


def apply_thread_ids(
    messages: list[TelegramMessage],
    resolution: ThreadResolution,
) -> list[TelegramMessage]:
    """Return copies of ``messages`` with their resolved ``thread_id`` set."""
    return [
        m.model_copy(update={"thread_id": resolution.thread_ids[m.id]})
        for m in messages
    ]
