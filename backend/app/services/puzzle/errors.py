from enum import Enum
from typing import Dict


class ErrorKind(str, Enum):
    NOT_YOUR_TURN = 'not_your_turn'
    PENDING_RESOLUTION = 'pending_resolution'
    INVALID_POSITION = 'invalid_position'
    POSITION_OCCUPIED = 'position_occupied'
    PIECE_NOT_FOUND = 'piece_not_found'
    NO_PENDING_CHECK = 'no_pending_check'
    WRONG_DECIDER = 'wrong_decider'
    HINT_BUDGET_EXHAUSTED = 'hint_budget_exhausted'
    GAME_NOT_ACTIVE = 'game_not_active'
    SNAPSHOT_REJECTED = 'snapshot_rejected'
    INVALID_SETUP = 'invalid_setup'
    INVALID_COMMAND = 'invalid_command'
    RACK_EMPTY = 'rack_empty'


class GameError:
    """Structured protocol failure returned (never raised) by the engine."""

    __slots__ = ('kind', 'message')

    def __init__(self, kind: ErrorKind, message: str):
        self.kind = ErrorKind(kind)
        self.message = message

    def __eq__(self, other):
        if not isinstance(other, GameError):
            return NotImplemented
        return self.kind == other.kind and self.message == other.message

    def __repr__(self):
        return f"GameError({self.kind.value!r}, {self.message!r})"

    def to_dict(self) -> Dict[str, str]:
        return {'kind': self.kind.value, 'message': self.message}


class CatalogError(Exception):
    """The piece catalog could not be built from slice metadata."""


class UnknownPieceError(CatalogError):
    def __init__(self, piece_id):
        super().__init__(f'Piece {piece_id!r} is not in the catalog')
        self.piece_id = piece_id


class SnapshotError(Exception):
    """An imported snapshot is malformed or violates a state invariant."""

    def __init__(self, invariant: str, message: str):
        super().__init__(message)
        self.invariant = invariant
        self.message = message
