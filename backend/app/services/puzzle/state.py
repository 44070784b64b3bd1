from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .modes import DEFAULT_MODE, GAME_MODES
from .pieces import Catalog
from .scoring import MAX_HINTS_PER_GAME, ScoreRecord, accuracy

PLAYER_A = 'playerA'
PLAYER_B = 'playerB'
PLAYERS = (PLAYER_A, PLAYER_B)

STATUS_SETUP = 'setup'
STATUS_ACTIVE = 'active'
STATUS_COMPLETED = 'completed'
STATUSES = (STATUS_SETUP, STATUS_ACTIVE, STATUS_COMPLETED)

END_COMPLETED = 'completed'
END_TIMEOUT = 'timeout'
END_ABANDONED = 'abandoned'
END_REASONS = (END_COMPLETED, END_TIMEOUT, END_ABANDONED)

RACK_CAPACITY = 10
DEFAULT_TIMER_SEC = 600


def opponent_of(player: str) -> str:
    return PLAYER_B if player == PLAYER_A else PLAYER_A


@dataclass(frozen=True)
class Move:
    """A placement; doubles as the PendingCheck record while unresolved."""
    player: str
    piece_id: int
    grid_index: int
    correct: bool
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'player': self.player,
            'pieceId': self.piece_id,
            'gridIndex': self.grid_index,
            'correct': self.correct,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Move':
        return cls(
            player=data['player'],
            piece_id=int(data.get('pieceId', data.get('piece_id'))),
            grid_index=int(data.get('gridIndex', data.get('grid_index'))),
            correct=bool(data['correct']),
            timestamp=int(data.get('timestamp') or 0),
        )


@dataclass
class GameState:
    grid: List[Optional[int]]
    racks: Dict[str, List[Optional[int]]]
    pool: List[int]
    scores: Dict[str, ScoreRecord] = field(default_factory=lambda: {p: ScoreRecord() for p in PLAYERS})
    current_turn: str = PLAYER_A
    pending_check: Optional[Move] = None
    move_history: List[Move] = field(default_factory=list)
    mode: str = DEFAULT_MODE
    timer_remaining: int = DEFAULT_TIMER_SEC
    status: str = STATUS_SETUP
    end_reason: Optional[str] = None
    updated_at: int = 0

    @classmethod
    def empty(cls, size: int, mode: str = DEFAULT_MODE, timer_remaining: int = DEFAULT_TIMER_SEC) -> 'GameState':
        return cls(
            grid=[None] * size,
            racks={p: [] for p in PLAYERS},
            pool=[],
            mode=mode,
            timer_remaining=timer_remaining,
        )

    def copy(self) -> 'GameState':
        # Moves and score records are frozen; only the containers need copying
        return GameState(
            grid=list(self.grid),
            racks={p: list(slots) for p, slots in self.racks.items()},
            pool=list(self.pool),
            scores=dict(self.scores),
            current_turn=self.current_turn,
            pending_check=self.pending_check,
            move_history=list(self.move_history),
            mode=self.mode,
            timer_remaining=self.timer_remaining,
            status=self.status,
            end_reason=self.end_reason,
            updated_at=self.updated_at,
        )

    @property
    def size(self) -> int:
        return len(self.grid)

    def rack_pieces(self, player: str) -> List[int]:
        return [pid for pid in self.racks.get(player, []) if pid is not None]

    def located_ids(self) -> Iterator[int]:
        for pid in self.grid:
            if pid is not None:
                yield pid
        for player in PLAYERS:
            yield from self.rack_pieces(player)
        yield from self.pool


def check_invariants(state: GameState, catalog: Catalog) -> Optional[Tuple[str, str]]:
    """Return ``(invariant, message)`` for the first violated invariant, else None."""
    size = len(catalog)
    if len(state.grid) != size:
        return 'shape', f'grid has {len(state.grid)} cells, catalog has {size} pieces'
    if set(state.racks) != set(PLAYERS) or set(state.scores) != set(PLAYERS):
        return 'shape', 'racks and scores must be keyed by both players'
    if state.current_turn not in PLAYERS:
        return 'shape', f'unknown current turn {state.current_turn!r}'
    if state.status not in STATUSES:
        return 'shape', f'unknown status {state.status!r}'
    if state.mode not in GAME_MODES:
        return 'shape', f'unknown mode {state.mode!r}'
    if state.timer_remaining < 0:
        return 'shape', 'timer cannot be negative'

    seen = set()
    for pid in state.located_ids():
        if pid in seen:
            return 'identity', f'piece {pid} appears more than once'
        seen.add(pid)
    if seen != set(range(size)):
        missing = sorted(set(range(size)) - seen)
        extra = sorted(seen - set(range(size)))
        return 'conservation', f'missing pieces {missing[:5]}, unknown pieces {extra[:5]}'

    for player in PLAYERS:
        if len(state.rack_pieces(player)) > RACK_CAPACITY:
            return 'rack_capacity', f'{player} rack holds more than {RACK_CAPACITY} pieces'

    pending = state.pending_check
    if pending is not None:
        if pending.player not in PLAYERS:
            return 'pending', f'unknown placer {pending.player!r}'
        if not 0 <= pending.grid_index < size or state.grid[pending.grid_index] != pending.piece_id:
            return 'pending', f'pending piece {pending.piece_id} is not on cell {pending.grid_index}'
        if pending.correct != (catalog[pending.piece_id].correct_position == pending.grid_index):
            return 'pending', 'pending correctness does not match the catalog'
        if state.current_turn != pending.player:
            return 'pending', 'turn must stay with the placer until the placement is decided'

    for index, pid in enumerate(state.grid):
        if pid is None or (pending is not None and index == pending.grid_index):
            continue
        if catalog[pid].correct_position != index:
            return 'placement', f'piece {pid} sits on cell {index} without a pending check'

    for player, record in state.scores.items():
        if record.correct_placements > record.total_placements:
            return 'scores', f'{player} has more correct than total placements'
        if min(record.streak, record.correct_placements, record.hints_used) < 0:
            return 'scores', f'{player} has a negative counter'
        if record.hints_used > MAX_HINTS_PER_GAME:
            return 'scores', f'{player} used more than {MAX_HINTS_PER_GAME} hints'
        if record.accuracy != accuracy(record.correct_placements, record.total_placements):
            return 'scores', f'{player} accuracy {record.accuracy} does not match its placements'
    return None
