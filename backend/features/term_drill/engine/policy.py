"""Scoring, lives and adaptive difficulty tuning for the round engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class DifficultyTier:
    """One SOLO-style rung of the difficulty ladder."""

    name: str
    min_streak: int
    distractor_count: int


SOLO_TIERS: Tuple[DifficultyTier, ...] = (
    DifficultyTier("unistructural", 0, 2),
    DifficultyTier("multistructural", 3, 3),
    DifficultyTier("relational", 6, 4),
    DifficultyTier("extended-abstract", 9, 5),
)


@dataclass(frozen=True)
class ScoringPolicy:
    """Numeric tuning of one game variant.

    ``tempo`` is the variant's time pressure in milliseconds: the movement
    tick interval for Snake and the mole display time for Whack-a-Term. A
    lower tempo is harder.
    """

    base_points: int
    streak_bonus: int
    tiers: Tuple[DifficultyTier, ...]
    tempo_start_ms: int
    tempo_min_ms: int
    tempo_max_ms: int
    speed_bonus: int = 0
    speed_threshold_ms: Optional[int] = None
    tier_bonus: int = 0
    perfect_streak_count: Optional[int] = None
    perfect_streak_bonus: int = 0
    starting_lives: int = 3
    feedback_delay_ms: int = 1000
    max_rounds: int = 10
    tempo_step_on_tier_up: int = 0
    tempo_step_on_tier_down: int = 0
    tempo_step_on_correct: int = 0
    tempo_streak_threshold: int = 0
    tempo_step_on_mistake: int = 0
    downgrade_window: int = 0
    downgrade_min_misses: int = 1
    award_badges: bool = False
    min_xp: int = 0
    xp_divisor: int = 10
    xp_floor: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def clamp_tempo(self, value: float) -> int:
        return int(max(self.tempo_min_ms, min(self.tempo_max_ms, value)))

    def correct_points(self, streak: int, elapsed_ms: float) -> int:
        """Points for a correct answer given the streak *before* this answer."""

        points = self.base_points + streak * self.streak_bonus
        if self.speed_threshold_ms is not None and elapsed_ms < self.speed_threshold_ms:
            points += self.speed_bonus
        return points

    def tier_for_streak(self, current_index: int, streak: int) -> int:
        """Return the tier index after a correct answer (one step at most)."""

        next_index = current_index + 1
        if next_index < len(self.tiers) and streak >= self.tiers[next_index].min_streak:
            return next_index
        return current_index

    def xp_for(self, score: int) -> int:
        earned = max(score, 0) / self.xp_divisor
        return max(self.min_xp, int(earned) if self.xp_floor else round(earned))

    def describe(self) -> Dict[str, Any]:
        return {
            "basePoints": self.base_points,
            "streakBonus": self.streak_bonus,
            "speedBonus": self.speed_bonus,
            "speedThresholdMs": self.speed_threshold_ms,
            "tierBonus": self.tier_bonus,
            "startingLives": self.starting_lives,
            "feedbackDelayMs": self.feedback_delay_ms,
            "maxRounds": self.max_rounds,
            "tempo": {
                "startMs": self.tempo_start_ms,
                "minMs": self.tempo_min_ms,
                "maxMs": self.tempo_max_ms,
            },
            "tiers": [
                {"name": tier.name, "minStreak": tier.min_streak, "distractors": tier.distractor_count}
                for tier in self.tiers
            ],
            **self.extra,
        }


SNAKE_POLICY = ScoringPolicy(
    base_points=120,
    streak_bonus=25,
    tiers=(
        DifficultyTier("unistructural", 0, 2),
        DifficultyTier("multistructural", 3, 3),
        DifficultyTier("relational", 6, 4),
    ),
    tempo_start_ms=420,
    tempo_min_ms=160,
    tempo_max_ms=580,
    feedback_delay_ms=2200,
    max_rounds=10,
    tempo_step_on_correct=40,
    tempo_streak_threshold=2,
    tempo_step_on_mistake=40,
    min_xp=10,
    xp_divisor=5,
    extra={"gridSize": 12},
)

WHACK_POLICY = ScoringPolicy(
    base_points=10,
    streak_bonus=2,
    speed_bonus=5,
    speed_threshold_ms=2000,
    tier_bonus=20,
    perfect_streak_count=10,
    perfect_streak_bonus=50,
    tiers=SOLO_TIERS,
    tempo_start_ms=3000,
    tempo_min_ms=1200,
    tempo_max_ms=3000,
    feedback_delay_ms=1000,
    max_rounds=15,
    tempo_step_on_tier_up=400,
    tempo_step_on_tier_down=400,
    downgrade_window=3,
    downgrade_min_misses=1,
    award_badges=True,
    min_xp=0,
    xp_divisor=10,
    xp_floor=True,
    extra={"holes": 6, "spawnDelayMs": 500},
)
