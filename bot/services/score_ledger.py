"""Running experience-point score for a player."""

import logging

logger = logging.getLogger(__name__)


class ScoreLedger:
    """A non-negative running score, earned by wins and spent on hints and skips."""

    def __init__(self, key: str, score: int = 0):
        if score < 0:
            raise ValueError("score must be non-negative")
        self.key = key
        self._score = score

    @property
    def score(self) -> int:
        return self._score

    def award(self, amount: int) -> int:
        """Add points. Returns the new score."""
        if amount < 0:
            raise ValueError("award amount must be non-negative")
        self._score += amount
        logger.debug(f"Ledger {self.key}: +{amount} -> {self._score}")
        return self._score

    def spend(self, amount: int) -> bool:
        """Subtract points if the ledger can cover them.

        Returns False and leaves the score unchanged when it can't.
        """
        if amount < 0:
            raise ValueError("spend amount must be non-negative")
        if self._score < amount:
            logger.debug(f"Ledger {self.key}: can't spend {amount}, only {self._score}")
            return False
        self._score = max(0, self._score - amount)
        logger.debug(f"Ledger {self.key}: -{amount} -> {self._score}")
        return True

    def reset(self) -> None:
        self._score = 0
