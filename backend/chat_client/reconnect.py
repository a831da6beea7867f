from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, TypeVar

if TYPE_CHECKING:
    from .session import ApiSession
    from .timeline import MessageTimeline

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ReconnectPolicy:
    """Exponential backoff for relay reconnects: 1s, 2s, 4s, ... capped at 30s."""

    base: float = 1.0
    factor: float = 2.0
    cap: float = 30.0
    max_attempts: int = 5

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        if attempt < 0 or attempt >= self.max_attempts:
            raise ValueError(f"attempt must be in [0, {self.max_attempts})")
        return min(self.cap, self.base * (self.factor**attempt))

    def delays(self) -> list[float]:
        return [self.delay_for(attempt) for attempt in range(self.max_attempts)]

    def run(self, connect: Callable[[], T], *, sleep: Callable[[float], None] = time.sleep) -> T:
        """Call ``connect`` until it succeeds, sleeping between failures.

        The first call is immediate; each failure waits the next delay. When
        every attempt has failed the last error is re-raised.
        """

        for attempt in range(self.max_attempts):
            try:
                return connect()
            except (ConnectionError, OSError):
                if attempt + 1 == self.max_attempts:
                    logger.warning("relay connect failed %s times, giving up", self.max_attempts)
                    raise
                delay = self.delay_for(attempt)
                logger.warning("relay connect failed (attempt %s), retrying in %ss", attempt + 1, delay)
                sleep(delay)


def join_frame(conversation_id) -> dict:
    return {"type": "join", "conversation_id": int(conversation_id)}


def resync(session: "ApiSession", timeline: "MessageTimeline") -> list[dict]:
    """Merge a fresh ``list`` into ``timeline``; returns what the relay missed."""

    missed = timeline.merge(session.messages(timeline.conversation_id))
    if missed:
        logger.info("recovered %s message(s) for conversation %s", len(missed), timeline.conversation_id)
    return missed


def reconnect(
    session: "ApiSession",
    timelines: Iterable["MessageTimeline"],
    connect: Callable[[], T],
    *,
    policy: ReconnectPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[T, dict[int, list[dict]]]:
    """Reopen the relay connection, rejoin each conversation, then reconcile.

    ``connect`` returns a connection with a ``send(text)`` method, as the
    usual websocket clients do. Each conversation is rejoined before its list
    is fetched, so a message sent in between arrives by one path or the other
    and the timeline keeps it once.
    """

    policy = policy or ReconnectPolicy()
    connection = policy.run(connect, sleep=sleep)

    recovered = {}
    for timeline in timelines:
        connection.send(json.dumps(join_frame(timeline.conversation_id)))
        recovered[timeline.conversation_id] = resync(session, timeline)
    return connection, recovered
