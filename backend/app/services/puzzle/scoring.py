"""Pure, table-driven scoring.

Every function takes a ``ModeScoring`` (or plain numbers) and a
``ScoreRecord`` and returns a new record. Nothing here knows about the
grid, racks or turn order.
"""

import math
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from .modes import ModeScoring

MAX_HINTS_PER_GAME = 5
HINT_COSTS = {
    'position': -5,
    'edge': -2,
    'corner': -3,
    'region': -5,
}

CHECK = 'check'
PASS = 'pass'
DECISIONS = (CHECK, PASS)

# Placement events attributed to the placer by a resolution
CORRECT = 'correct'
INCORRECT = 'incorrect'


@dataclass(frozen=True)
class ScoreRecord:
    score: int = 0
    streak: int = 0
    correct_placements: int = 0
    total_placements: int = 0
    accuracy: int = 100
    hints_used: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'score': self.score,
            'streak': self.streak,
            'correctPlacements': self.correct_placements,
            'totalPlacements': self.total_placements,
            'accuracy': self.accuracy,
            'hintsUsed': self.hints_used,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ScoreRecord':
        data = data or {}

        def _int(*keys, default=0):
            for key in keys:
                value = data.get(key)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    return int(value)
            return default

        correct = _int('correctPlacements', 'correct_placements')
        total = _int('totalPlacements', 'total_placements')
        # accuracy is derived from the counters; a stored value is ignored
        return cls(
            score=_int('score'),
            streak=_int('streak'),
            correct_placements=correct,
            total_placements=total,
            accuracy=accuracy(correct, total),
            hints_used=_int('hintsUsed', 'hints_used'),
        )


@dataclass(frozen=True)
class Resolution:
    """One row of the check/pass resolution table."""
    tag: str
    keeps_piece: bool
    placer_points: Optional[str]
    placer_event: Optional[str]
    decider_points: Optional[str]


RESOLUTIONS = {
    (CHECK, True): Resolution('failed_check', True, 'check_correct', CORRECT, 'checker_fail'),
    (CHECK, False): Resolution('successful_check', False, None, None, 'checker_success'),
    (PASS, True): Resolution('opponent_passed_correct', True, None, None, None),
    (PASS, False): Resolution('opponent_passed_incorrect', False, 'pass_wrong', INCORRECT, 'pass_wrong'),
}


def resolve(decision: str, correct: bool) -> Resolution:
    return RESOLUTIONS[(decision, bool(correct))]


def points_for(scoring: ModeScoring, key: Optional[str]) -> int:
    return getattr(scoring, key) if key else 0


def accuracy(correct_placements: int, total_placements: int) -> int:
    if total_placements <= 0:
        return 100
    # half-up, not banker's rounding
    return int(math.floor(100 * correct_placements / total_placements + 0.5))


def streak_bonus(scoring: ModeScoring, streak: int) -> int:
    threshold = scoring.streak_bonus_threshold
    if threshold <= 0 or streak < threshold:
        return 0
    return int((streak // threshold) * 2 * scoring.streak_multiplier)


def adjust_score(record: ScoreRecord, points: int) -> ScoreRecord:
    """Raw score change that is not a placement (checker rewards and penalties)."""
    return replace(record, score=record.score + points)


def record_correct_placement(record: ScoreRecord, points: int, scoring: ModeScoring) -> ScoreRecord:
    streak = record.streak + 1
    correct = record.correct_placements + 1
    total = record.total_placements + 1
    score = record.score + points + streak_bonus(scoring, streak)
    return replace(
        record,
        score=score,
        streak=streak,
        correct_placements=correct,
        total_placements=total,
        accuracy=accuracy(correct, total),
    )


def record_incorrect_placement(record: ScoreRecord, points: int) -> ScoreRecord:
    total = record.total_placements + 1
    return replace(
        record,
        score=record.score + points,
        streak=0,
        total_placements=total,
        accuracy=accuracy(record.correct_placements, total),
    )


def record_hint(record: ScoreRecord, cost: int) -> ScoreRecord:
    return replace(record, score=record.score + cost, hints_used=record.hints_used + 1)


def solo_points(scoring: ModeScoring, streak: int) -> int:
    """Points for an auto-verified correct piece; ``streak`` includes this piece."""
    points = scoring.correct_piece
    if streak >= scoring.streak_bonus_threshold:
        points = int(math.floor(points * (1 + scoring.streak_multiplier * 0.2)))
    return points


def record_solo_placement(record: ScoreRecord, correct: bool, scoring: ModeScoring) -> ScoreRecord:
    if not correct:
        return record_incorrect_placement(record, scoring.wrong_piece)
    streak = record.streak + 1
    correct_placements = record.correct_placements + 1
    total = record.total_placements + 1
    return replace(
        record,
        score=record.score + solo_points(scoring, streak),
        streak=streak,
        correct_placements=correct_placements,
        total_placements=total,
        accuracy=accuracy(correct_placements, total),
    )
