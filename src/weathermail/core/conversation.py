"""Append-only conversation history for a single run."""

import logging
from typing import (
    Iterator,
    List,
    Tuple,
)

from weathermail.core.schema import Turn

logger = logging.getLogger(__name__)


class Conversation:
    """
    Ordered history of everything the model has seen during one run.

    Turns are immutable and can only be appended; there is no API to remove or replace
    one.  The history lives in memory and is discarded with the run.
    """

    def __init__(self) -> None:
        self._turns: List[Turn] = []

    def append(self, turn: Turn) -> Turn:
        """Record *turn* at the end of the history and return it."""
        if not isinstance(turn, Turn):
            raise TypeError(f"expected Turn, got {type(turn).__name__}")
        self._turns.append(turn)
        logger.debug("Turn %d appended (%s)", len(self._turns), turn.role.value)
        return turn

    @property
    def turns(self) -> Tuple[Turn, ...]:
        """Snapshot of the history; later appends do not show up in it."""
        return tuple(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self.turns)
