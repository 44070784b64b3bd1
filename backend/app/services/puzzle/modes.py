"""Static registry of rule variants.

The engine reads feature flags and scoring constants from here and never
branches on a mode id itself.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

CLASSIC = 'CLASSIC'
SUPER = 'SUPER'
SAGE = 'SAGE'
SAVANT = 'SAVANT'
SINGLE_PLAYER = 'SINGLE_PLAYER'

DEFAULT_MODE = CLASSIC

# How a placement gets adjudicated
CHECK_OPPONENT = 'opponent'
CHECK_AUTO = 'auto'
CHECK_NONE = 'none'


@dataclass(frozen=True)
class ModeScoring:
    check_correct: int = 0
    checker_success: int = 0
    checker_fail: int = 0
    pass_wrong: int = 0
    streak_multiplier: float = 1
    streak_bonus_threshold: int = 3
    correct_piece: int = 0
    wrong_piece: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'checkCorrect': self.check_correct,
            'checkerSuccess': self.checker_success,
            'checkerFail': self.checker_fail,
            'passWrong': self.pass_wrong,
            'streakMultiplier': self.streak_multiplier,
            'streakBonusThreshold': self.streak_bonus_threshold,
            'correctPiece': self.correct_piece,
            'wrongPiece': self.wrong_piece,
        }


@dataclass(frozen=True)
class ModeFeatures:
    turns_per_round: Optional[int] = 1  # None means unbounded
    checks_per_turn: int = 1
    multiplayer: bool = True
    check: str = CHECK_OPPONENT
    time_bonus: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'turnsPerRound': self.turns_per_round,
            'checksPerTurn': self.checks_per_turn,
            'multiplayer': self.multiplayer,
            'check': self.check,
            'timeBonus': self.time_bonus,
        }


@dataclass(frozen=True)
class GameMode:
    id: str
    name: str
    description: str
    features: ModeFeatures
    scoring: ModeScoring
    available: bool = True

    @property
    def players(self) -> int:
        return 2 if self.features.multiplayer else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'features': self.features.to_dict(),
            'scoring': self.scoring.to_dict(),
            'available': self.available,
        }


GAME_MODES: Dict[str, GameMode] = {
    CLASSIC: GameMode(
        id=CLASSIC,
        name='Classic Mode',
        description='Single turn, opponent checks your placement',
        features=ModeFeatures(),
        scoring=ModeScoring(
            check_correct=10, checker_success=5, checker_fail=-2, pass_wrong=-3,
            streak_multiplier=1, streak_bonus_threshold=3,
        ),
    ),
    SUPER: GameMode(
        id=SUPER,
        name='Super Mode',
        description='Higher stakes, opponent checks your placement',
        features=ModeFeatures(),
        scoring=ModeScoring(
            check_correct=15, checker_success=8, checker_fail=-3, pass_wrong=-5,
            streak_multiplier=1.5, streak_bonus_threshold=3,
        ),
    ),
    SAGE: GameMode(
        id=SAGE,
        name='Sage Mode',
        description='Highest stakes, streaks pay out every second correct piece',
        features=ModeFeatures(),
        scoring=ModeScoring(
            check_correct=20, checker_success=10, checker_fail=-5, pass_wrong=-8,
            streak_multiplier=2, streak_bonus_threshold=2,
        ),
    ),
    SAVANT: GameMode(
        id=SAVANT,
        name='Savant Mode',
        description='Infinite turns, most correct pieces wins',
        features=ModeFeatures(turns_per_round=None, checks_per_turn=0, check=CHECK_NONE),
        scoring=ModeScoring(
            correct_piece=25, wrong_piece=0,
            streak_multiplier=2.5, streak_bonus_threshold=5,
        ),
        available=False,
    ),
    SINGLE_PLAYER: GameMode(
        id=SINGLE_PLAYER,
        name='Single Player',
        description='Practice solo with auto-verification',
        features=ModeFeatures(checks_per_turn=0, multiplayer=False, check=CHECK_AUTO, time_bonus=True),
        scoring=ModeScoring(
            correct_piece=10, wrong_piece=-2,
            streak_multiplier=1, streak_bonus_threshold=3,
        ),
    ),
}


def _normalise(mode_id) -> str:
    return mode_id.upper() if isinstance(mode_id, str) else ''


def get_mode(mode_id: Optional[str]) -> GameMode:
    """Look up a mode; unknown ids fall back to Classic."""
    return GAME_MODES.get(_normalise(mode_id), GAME_MODES[DEFAULT_MODE])


def get_mode_scoring(mode_id: Optional[str]) -> ModeScoring:
    return get_mode(mode_id).scoring


def get_available_modes(multiplayer_only: bool = False) -> List[GameMode]:
    return [
        mode for mode in GAME_MODES.values()
        if mode.available and (mode.features.multiplayer or not multiplayer_only)
    ]


def is_mode_multiplayer(mode_id: Optional[str]) -> bool:
    mode = GAME_MODES.get(_normalise(mode_id))
    return mode.features.multiplayer if mode else True
