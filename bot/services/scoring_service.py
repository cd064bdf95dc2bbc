"""Scoring and pixelation rules for game rounds."""

import math

from models import Difficulty, GameRules


def pixel_step(rules: GameRules) -> int:
    """How much the pixelation factor drops on each wrong guess."""
    return rules.starting_pixelation // rules.max_guesses + rules.pixel_step_bonus


def next_pixel_factor(current: int, rules: GameRules) -> int:
    """Pixelation after a wrong guess that does not end the round.

    Never drops below the minimum visible value; only a finished round is
    shown at full fidelity (factor 1).
    """
    floor = max(2, rules.min_pixelation)
    return min(current, max(floor, current - pixel_step(rules)))


def calculate_base_award(guesses_used: int, rules: GameRules) -> int:
    """Award before difficulty and time adjustments.

    Starts at max_award for a first-try win and drops by award_step per
    wrong guess, but never below min_award.
    """
    return max(rules.min_award, rules.max_award - guesses_used * rules.award_step)


def calculate_time_bonus(time_remaining: int | None, rules: GameRules) -> int:
    """Bonus for seconds left on the clock. Zero when there is no timer."""
    if not time_remaining or time_remaining <= 0:
        return 0
    return time_remaining * rules.time_bonus_per_second


def calculate_award(
    guesses_used: int,
    difficulty: Difficulty,
    rules: GameRules,
    time_remaining: int | None = None,
) -> int:
    """Total points for a win, floored to an integer."""
    base = calculate_base_award(guesses_used, rules)
    multiplier = rules.difficulty_multipliers.get(difficulty, 1.0)
    return math.floor(base * multiplier + calculate_time_bonus(time_remaining, rules))


def timer_allotment(difficulty: Difficulty, rules: GameRules) -> int:
    """Seconds allowed per guess for a difficulty."""
    return rules.timer_seconds[difficulty]
