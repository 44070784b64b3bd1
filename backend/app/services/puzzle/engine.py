"""Authoritative state machine for a two-player puzzle game.

Every command takes a ``GameState`` and returns a ``CommandResult`` holding a
new state plus an outcome record. The input state is never mutated, and on
any protocol violation the result carries a ``GameError`` and the original
state. The engine performs no I/O and does not log.
"""

import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .errors import ErrorKind, GameError
from .modes import CHECK_AUTO, DEFAULT_MODE, GameMode, get_mode
from .pieces import Catalog, Piece
from .scoring import (
    CORRECT,
    DECISIONS,
    HINT_COSTS,
    INCORRECT,
    MAX_HINTS_PER_GAME,
    adjust_score,
    points_for,
    record_correct_placement,
    record_hint,
    record_incorrect_placement,
    record_solo_placement,
    resolve,
)
from .state import (
    DEFAULT_TIMER_SEC,
    END_COMPLETED,
    END_REASONS,
    END_TIMEOUT,
    PLAYER_A,
    PLAYER_B,
    PLAYERS,
    RACK_CAPACITY,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    GameState,
    Move,
)

TIE = 'tie'


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class CommandResult:
    state: GameState
    outcome: Dict[str, Any] = field(default_factory=dict)
    error: Optional[GameError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _fail(state: GameState, kind: ErrorKind, message: str) -> CommandResult:
    return CommandResult(state=state, error=GameError(kind, message))


def is_complete(state: GameState) -> bool:
    """Every cell is filled, or there is nothing left to place."""
    if all(cell is not None for cell in state.grid):
        return True
    return not state.pool and not any(state.rack_pieces(p) for p in PLAYERS)


def winner(state: GameState) -> Optional[str]:
    if state.status != STATUS_COMPLETED and not is_complete(state):
        return None
    if not get_mode(state.mode).features.multiplayer:
        return PLAYER_A
    score_a = state.scores[PLAYER_A].score
    score_b = state.scores[PLAYER_B].score
    if score_a > score_b:
        return PLAYER_A
    if score_b > score_a:
        return PLAYER_B
    return TIE


def refill_rack(state: GameState, player: str, limit: int = RACK_CAPACITY) -> int:
    """Fill empty slots left-to-right from the front of the pool.

    Mutates ``state`` in place and returns the number of pieces drawn.
    """
    rack = state.racks[player]
    needed = limit - len(state.rack_pieces(player))
    drawn = 0
    for slot, pid in enumerate(rack):
        if needed <= 0 or not state.pool:
            break
        if pid is None:
            rack[slot] = state.pool.pop(0)
            needed -= 1
            drawn += 1
    while needed > 0 and state.pool:
        rack.append(state.pool.pop(0))
        needed -= 1
        drawn += 1
    return drawn


def return_to_rack(state: GameState, player: str, piece_id: int) -> int:
    rack = state.racks[player]
    for slot, pid in enumerate(rack):
        if pid is None:
            rack[slot] = piece_id
            return slot
    rack.append(piece_id)
    return len(rack) - 1


class Engine:
    """Commands over ``GameState`` for one game's immutable piece catalog."""

    def __init__(self, catalog: Catalog, clock: Optional[Callable[[], int]] = None):
        self.catalog = catalog
        self._clock = clock or _now_ms

    # ---- setup ----

    def initialize(self, mode: str = DEFAULT_MODE, rng: Optional[random.Random] = None,
                   timer_remaining: int = DEFAULT_TIMER_SEC) -> CommandResult:
        game_mode = get_mode(mode)
        size = len(self.catalog)
        empty = GameState.empty(size, game_mode.id, timer_remaining)
        if not game_mode.available:
            return _fail(empty, ErrorKind.INVALID_SETUP, f'{game_mode.name} is not available yet')
        required = RACK_CAPACITY * game_mode.players
        if size < required:
            return _fail(empty, ErrorKind.INVALID_SETUP, f'{game_mode.name} needs at least {required} pieces, got {size}')

        state = empty
        state.pool = list(self.catalog.ids())
        (rng or random.Random()).shuffle(state.pool)
        for player in self._players(game_mode):
            refill_rack(state, player)
        state.status = STATUS_ACTIVE
        state.updated_at = self._clock()
        return CommandResult(state=state, outcome={'mode': game_mode.id, 'pieces': size})

    # ---- placement ----

    def place(self, state: GameState, player: str, piece_id: int, grid_index: int) -> CommandResult:
        if state.status != STATUS_ACTIVE:
            return _fail(state, ErrorKind.GAME_NOT_ACTIVE, f'Game is {state.status}')
        if state.pending_check is not None:
            return _fail(state, ErrorKind.PENDING_RESOLUTION, 'The last placement has not been decided yet')
        if state.current_turn != player:
            return _fail(state, ErrorKind.NOT_YOUR_TURN, 'Not your turn')
        if not _is_int(grid_index) or not 0 <= grid_index < state.size:
            return _fail(state, ErrorKind.INVALID_POSITION, f'Invalid grid position {grid_index!r}')
        if state.grid[grid_index] is not None:
            return _fail(state, ErrorKind.POSITION_OCCUPIED, f'Position {grid_index} is occupied')
        if not _is_int(piece_id) or piece_id not in state.rack_pieces(player):
            return _fail(state, ErrorKind.PIECE_NOT_FOUND, f'Piece {piece_id!r} is not in your rack')

        piece = self.catalog.get(piece_id)
        game_mode = get_mode(state.mode)
        now = self._clock()
        new = state.copy()
        slot = new.racks[player].index(piece_id)
        new.racks[player][slot] = None
        new.grid[grid_index] = piece_id
        move = Move(
            player=player,
            piece_id=piece_id,
            grid_index=grid_index,
            correct=piece.correct_position == grid_index,
            timestamp=now,
        )
        new.move_history.append(move)
        new.updated_at = now

        if game_mode.features.check == CHECK_AUTO:
            return self._auto_resolve(new, move, slot, game_mode)

        new.pending_check = move
        refilled = 0
        if not new.rack_pieces(player) and new.pool:
            # keep a slot free in case the placement is rejected
            refilled = refill_rack(new, player, RACK_CAPACITY - 1)
        return CommandResult(state=new, outcome={
            'pieceId': piece_id,
            'gridIndex': grid_index,
            'correct': move.correct,
            'awaitingCheck': True,
            'refilled': refilled,
        })

    def _auto_resolve(self, new: GameState, move: Move, slot: int, game_mode: GameMode) -> CommandResult:
        before = new.scores[move.player].score
        new.scores[move.player] = record_solo_placement(new.scores[move.player], move.correct, game_mode.scoring)
        if not move.correct:
            new.grid[move.grid_index] = None
            new.racks[move.player][slot] = move.piece_id
        refilled = 0
        if not new.rack_pieces(move.player) and new.pool:
            refilled = refill_rack(new, move.player)
        outcome = {
            'pieceId': move.piece_id,
            'gridIndex': move.grid_index,
            'correct': move.correct,
            'result': 'auto_correct' if move.correct else 'auto_incorrect',
            'refilled': refilled,
        }
        outcome.update(self._settle(new, game_mode))
        outcome['delta'] = new.scores[move.player].score - before
        return CommandResult(state=new, outcome=outcome)

    # ---- adjudication ----

    def decide(self, state: GameState, decider: str, decision: str) -> CommandResult:
        if state.status != STATUS_ACTIVE:
            return _fail(state, ErrorKind.GAME_NOT_ACTIVE, f'Game is {state.status}')
        pending = state.pending_check
        if pending is None:
            return _fail(state, ErrorKind.NO_PENDING_CHECK, 'No pending move to check')
        if decider not in PLAYERS or decider == pending.player:
            return _fail(state, ErrorKind.WRONG_DECIDER, 'Only the opponent of the placer may decide')
        if decision not in DECISIONS:
            return _fail(state, ErrorKind.INVALID_COMMAND, f'Unknown decision {decision!r}')

        game_mode = get_mode(state.mode)
        scoring = game_mode.scoring
        resolution = resolve(decision, pending.correct)
        placer = pending.player
        new = state.copy()
        before = {p: new.scores[p].score for p in PLAYERS}

        placer_points = points_for(scoring, resolution.placer_points)
        if resolution.placer_event == CORRECT:
            new.scores[placer] = record_correct_placement(new.scores[placer], placer_points, scoring)
        elif resolution.placer_event == INCORRECT:
            new.scores[placer] = record_incorrect_placement(new.scores[placer], placer_points)
        if resolution.decider_points:
            new.scores[decider] = adjust_score(new.scores[decider], points_for(scoring, resolution.decider_points))

        returned_slot = None
        if not resolution.keeps_piece:
            new.grid[pending.grid_index] = None
            returned_slot = return_to_rack(new, placer, pending.piece_id)

        new.pending_check = None
        new.current_turn = decider
        for player in self._players(game_mode):
            if not new.rack_pieces(player) and new.pool:
                refill_rack(new, player)
        new.updated_at = self._clock()

        outcome = {
            'result': resolution.tag,
            'decision': decision,
            'pieceId': pending.piece_id,
            'gridIndex': pending.grid_index,
            'correctPlacement': pending.correct,
            'returnedToSlot': returned_slot,
            'placerDelta': new.scores[placer].score - before[placer],
            'deciderDelta': new.scores[decider].score - before[decider],
        }
        outcome.update(self._settle(new, game_mode))
        return CommandResult(state=new, outcome=outcome)

    # ---- hints ----

    def use_hint(self, state: GameState, player: str, kind: str) -> CommandResult:
        if state.status != STATUS_ACTIVE:
            return _fail(state, ErrorKind.GAME_NOT_ACTIVE, f'Game is {state.status}')
        if player not in PLAYERS:
            return _fail(state, ErrorKind.INVALID_COMMAND, f'Unknown player {player!r}')
        record = state.scores[player]
        if record.hints_used >= MAX_HINTS_PER_GAME:
            return _fail(state, ErrorKind.HINT_BUDGET_EXHAUSTED, 'Maximum hints used for this game')
        if kind not in HINT_COSTS:
            return _fail(state, ErrorKind.INVALID_COMMAND, f'Unknown hint type {kind!r}')
        rack = [self.catalog.get(pid) for pid in state.rack_pieces(player)]
        if not rack:
            return _fail(state, ErrorKind.RACK_EMPTY, 'No pieces available for hint')

        cost = HINT_COSTS[kind]
        new = state.copy()
        new.scores[player] = record_hint(record, cost)
        new.updated_at = self._clock()
        return CommandResult(state=new, outcome={
            'hint': self._hint_payload(kind, rack),
            'cost': cost,
            'hintsUsed': new.scores[player].hints_used,
        })

    def _hint_payload(self, kind: str, rack: List[Piece]) -> Dict[str, Any]:
        if kind == 'position':
            piece = rack[0]
            return {'type': 'position', 'pieceId': piece.id, 'correctPosition': piece.correct_position}
        if kind == 'edge':
            return {'type': 'edge', 'edgePieceIds': [p.id for p in rack if p.is_strict_edge()]}
        if kind == 'corner':
            return {'type': 'corner', 'cornerPieceIds': [p.id for p in rack if p.is_corner()]}
        piece = rack[0]
        cols = max(self.catalog.cols, 1)
        row, col = divmod(piece.correct_position, cols)
        return {
            'type': 'region',
            'pieceId': piece.id,
            'region': {
                'rowStart': max(0, row - 1),
                'rowEnd': min(self.catalog.rows - 1, row + 1),
                'colStart': max(0, col - 1),
                'colEnd': min(cols - 1, col + 1),
            },
        }

    # ---- clock and termination ----

    def tick(self, state: GameState, seconds: int = 1) -> CommandResult:
        if state.status != STATUS_ACTIVE:
            return _fail(state, ErrorKind.GAME_NOT_ACTIVE, f'Game is {state.status}')
        if not _is_int(seconds) or seconds < 0:
            return _fail(state, ErrorKind.INVALID_COMMAND, f'Invalid tick {seconds!r}')
        new = state.copy()
        new.timer_remaining = max(0, state.timer_remaining - seconds)
        new.updated_at = self._clock()
        expired = new.timer_remaining == 0
        if expired:
            new.status = STATUS_COMPLETED
            new.end_reason = END_TIMEOUT
        outcome = {'timerRemaining': new.timer_remaining, 'expired': expired}
        if expired:
            outcome['winner'] = winner(new)
        return CommandResult(state=new, outcome=outcome)

    def terminate(self, state: GameState, reason: str = END_TIMEOUT) -> CommandResult:
        if state.status == STATUS_COMPLETED:
            return _fail(state, ErrorKind.GAME_NOT_ACTIVE, 'Game is already completed')
        if reason not in END_REASONS:
            return _fail(state, ErrorKind.INVALID_COMMAND, f'Unknown termination reason {reason!r}')
        new = state.copy()
        new.status = STATUS_COMPLETED
        new.end_reason = reason
        new.updated_at = self._clock()
        return CommandResult(state=new, outcome={'reason': reason, 'winner': winner(new)})

    # ---- queries ----

    def is_complete(self, state: GameState) -> bool:
        return is_complete(state)

    def winner(self, state: GameState) -> Optional[str]:
        return winner(state)

    # ---- helpers ----

    @staticmethod
    def _players(game_mode: GameMode):
        return PLAYERS[:game_mode.players]

    def _settle(self, new: GameState, game_mode: GameMode) -> Dict[str, Any]:
        """Move to completed once the board is done and nothing is pending."""
        if new.pending_check is not None or not is_complete(new):
            return {'completed': False}
        time_bonus = 0
        if game_mode.features.time_bonus and all(cell is not None for cell in new.grid):
            time_bonus = new.timer_remaining
            for player in self._players(game_mode):
                new.scores[player] = adjust_score(new.scores[player], time_bonus)
        new.status = STATUS_COMPLETED
        new.end_reason = END_COMPLETED
        return {'completed': True, 'winner': winner(new), 'timeBonus': time_bonus}
