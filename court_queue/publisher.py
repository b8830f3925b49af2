from __future__ import annotations

# Change publication.
#
# After a committed mutation the service calls `Publisher.update()`. Every
# view is recomputed, serialized, and compared against what this publisher
# last sent for the same topic; only changed (or never-sent) topics go out.
#
# One Publisher per connection: the memo lives on the instance.

import json
import logging
from typing import Any, Callable, Iterable, Protocol

from sqlalchemy.orm import Session

from .transaction import Transaction
from .views import DEFAULT_VIEWS, View

logger = logging.getLogger(__name__)


class Channel(Protocol):
    def publish_text(self, topic: str, payload: str) -> None: ...


def serialize(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True)


class Publisher:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        channel: Channel,
        *,
        views: Iterable[View] = DEFAULT_VIEWS,
        topic: Callable[[str], str] = lambda name: name,
    ) -> None:
        self._session_factory = session_factory
        self._channel = channel
        self._views = tuple(views)
        self._topic = topic
        self._memo: dict[str, str] = {}

    @property
    def memo(self) -> dict[str, str]:
        return dict(self._memo)

    def update(self) -> list[str]:
        """Run one publish cycle; returns the logical topics that were sent.

        A failing view stops the cycle. Topics already sent stay sent, and the
        memo keeps its previous contents so they are compared again next time.
        """
        history: dict[str, str] = {}
        published: list[str] = []

        for view in self._views:
            with Transaction(self._session_factory, gated=False) as session:
                entries = view(session)

            for name, obj in entries:
                payload = serialize(obj)
                history[name] = payload
                if self._memo.get(name) == payload:
                    continue
                self._channel.publish_text(self._topic(name), payload)
                published.append(name)

        # Topics no longer produced (deleted courts or people) drop out of the memo.
        self._memo = history
        if published:
            logger.debug("published %d topic(s): %s", len(published), ", ".join(published))
        return published
