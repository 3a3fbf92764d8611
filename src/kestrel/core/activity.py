from __future__ import annotations

import logging
from collections import deque

from kestrel.core.events import EventBus
from kestrel.types import ActivityEntry, ActivityKind

logger = logging.getLogger("kestrel.activity")

_LEVELS: dict[str, int] = {
    "info": logging.INFO,
    "success": logging.INFO,
    "match": logging.INFO,
    "skip": logging.INFO,
    "error": logging.WARNING,
}


class ActivityLog:
    """Operator-facing progress log for one run.

    Entries go to the ``kestrel.activity`` logger and, when a bus is attached,
    to every subscriber of the run's stream. ``entries`` keeps only the most
    recent ``max_entries``; ``count`` is the total emitted over the run.
    """

    def __init__(self, run_id: int = 0, event_bus: EventBus | None = None, max_entries: int = 500):
        self.run_id = run_id
        self.event_bus = event_bus
        self.entries: deque[ActivityEntry] = deque(maxlen=max_entries)
        self.count = 0

    async def __call__(
        self,
        message: str,
        kind: ActivityKind = "info",
        *,
        job_title: str | None = None,
        match_score: int | None = None,
    ) -> ActivityEntry:
        entry = ActivityEntry(message=message, kind=kind, job_title=job_title, match_score=match_score)
        self.entries.append(entry)
        self.count += 1

        suffix = f" (Score: {match_score})" if match_score is not None else ""
        title = f" [{job_title}]" if job_title else ""
        logger.log(_LEVELS.get(kind, logging.INFO), "run=%s %s%s%s", self.run_id, message, title, suffix)

        if self.event_bus is not None:
            await self.event_bus.publish(self.run_id, {"run_id": self.run_id, **entry.model_dump(mode="json")})
        return entry
