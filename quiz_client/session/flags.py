"""Questions the learner marked to revisit. Local only."""

from __future__ import annotations


class FlagTracker:
    def __init__(self) -> None:
        self._flagged: set[str] = set()

    def toggle(self, question_id: str) -> bool:
        """Flip the flag and return the new state."""
        if question_id in self._flagged:
            self._flagged.discard(question_id)
            return False
        self._flagged.add(question_id)
        return True

    def flag(self, question_id: str) -> None:
        self._flagged.add(question_id)

    def unflag(self, question_id: str) -> None:
        self._flagged.discard(question_id)

    def is_flagged(self, question_id: str) -> bool:
        return question_id in self._flagged

    def all(self) -> frozenset[str]:
        return frozenset(self._flagged)

    def clear(self) -> None:
        self._flagged.clear()

    def __len__(self) -> int:
        return len(self._flagged)
