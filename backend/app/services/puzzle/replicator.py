"""Wire snapshots and the reconciliation policy between two peers.

A snapshot is a plain JSON-able dict. Piece image data is never included;
both peers rebuild it from the shared source image, and every id in a
snapshot is resolved against the local ``Catalog``.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .engine import CommandResult, Engine, is_complete, winner
from .errors import ErrorKind, GameError, SnapshotError
from .modes import DEFAULT_MODE, get_mode
from .pieces import Catalog
from .scoring import ScoreRecord
from .state import (
    DEFAULT_TIMER_SEC,
    PLAYER_A,
    PLAYER_B,
    PLAYERS,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    END_REASONS,
    STATUSES,
    GameState,
    Move,
    check_invariants,
)

logger = logging.getLogger(__name__)

# snake_case keys written by older persisted rows
_ALIASES = {
    'playerARack': 'player_a_rack',
    'playerBRack': 'player_b_rack',
    'piecePool': 'piece_pool',
    'currentTurn': 'current_turn',
    'pendingCheck': 'pending_check',
    'moveHistory': 'move_history',
    'timerRemaining': 'timer_remaining',
    'endReason': 'end_reason',
    'updatedAt': 'updated_at',
}


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _get(data: Dict[str, Any], key: str, default=None):
    if key in data and data[key] is not None:
        return data[key]
    alias = _ALIASES.get(key)
    if alias and data.get(alias) is not None:
        return data[alias]
    return default


def export_snapshot(state: GameState) -> Dict[str, Any]:
    return {
        'grid': [None if pid is None else {'id': pid, 'correctPosition': pid} for pid in state.grid],
        'playerARack': list(state.racks[PLAYER_A]),
        'playerBRack': list(state.racks[PLAYER_B]),
        'piecePool': list(state.pool),
        'currentTurn': state.current_turn,
        'pendingCheck': state.pending_check.to_dict() if state.pending_check else None,
        'moveHistory': [move.to_dict() for move in state.move_history],
        'timerRemaining': state.timer_remaining,
        'scores': {player: state.scores[player].to_dict() for player in PLAYERS},
        'mode': state.mode,
        'status': state.status,
        'endReason': state.end_reason,
        'updatedAt': state.updated_at,
    }


def _grid_cell(cell, catalog: Catalog) -> Optional[int]:
    # Only {id, correctPosition} objects count as placed pieces
    if not isinstance(cell, dict):
        return None
    pid = cell.get('id')
    if not _is_int(pid) or not _is_int(cell.get('correctPosition')):
        return None
    if pid not in catalog:
        logger.warning(f"[snapshot] dropping unknown grid piece id={pid}")
        return None
    return pid


def _entry_id(item, catalog: Catalog, where: str) -> Optional[int]:
    if isinstance(item, dict):
        item = item.get('id')
    if not _is_int(item):
        return None
    if item not in catalog:
        logger.warning(f"[snapshot] dropping unknown piece id={item} from {where}")
        return None
    return item


def import_snapshot(data: Dict[str, Any], catalog: Catalog) -> GameState:
    """Rebuild a ``GameState`` from a snapshot.

    Raises ``SnapshotError`` naming the violated invariant when the result
    would not be a consistent state.
    """
    if not isinstance(data, dict):
        raise SnapshotError('shape', 'snapshot must be an object')
    try:
        raw_grid = _get(data, 'grid', [])
        grid = [_grid_cell(cell, catalog) for cell in raw_grid] if isinstance(raw_grid, list) else []
        racks = {}
        for player, key in ((PLAYER_A, 'playerARack'), (PLAYER_B, 'playerBRack')):
            raw = _get(data, key, [])
            racks[player] = [_entry_id(item, catalog, player) for item in raw] if isinstance(raw, list) else []
        raw_pool = _get(data, 'piecePool', [])
        pool = [pid for pid in (_entry_id(item, catalog, 'pool') for item in raw_pool) if pid is not None] \
            if isinstance(raw_pool, list) else []

        raw_scores = _get(data, 'scores', {}) or {}
        scores = {player: ScoreRecord.from_dict(raw_scores.get(player)) for player in PLAYERS}
        raw_pending = _get(data, 'pendingCheck')
        pending = Move.from_dict(raw_pending) if raw_pending else None
        history = [Move.from_dict(move) for move in (_get(data, 'moveHistory', []) or [])]
        timer = _get(data, 'timerRemaining', DEFAULT_TIMER_SEC)
        status = _get(data, 'status', STATUS_ACTIVE)
        updated_at = _get(data, 'updatedAt', 0)
        mode = _get(data, 'mode', DEFAULT_MODE)
        end_reason = _get(data, 'endReason')
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SnapshotError('shape', f'malformed snapshot: {exc}') from exc

    if not _is_int(timer) or not _is_int(updated_at):
        raise SnapshotError('shape', 'timerRemaining and updatedAt must be integers')
    if status not in STATUSES:
        raise SnapshotError('shape', f'unknown status {status!r}')
    if not isinstance(mode, str):
        raise SnapshotError('shape', f'mode must be a string, got {type(mode).__name__}')
    if end_reason is not None and end_reason not in END_REASONS:
        raise SnapshotError('shape', f'unknown endReason {end_reason!r}')

    state = GameState(
        grid=grid,
        racks=racks,
        pool=pool,
        scores=scores,
        current_turn=_get(data, 'currentTurn', PLAYER_A),
        pending_check=pending,
        move_history=history,
        mode=get_mode(mode).id,
        timer_remaining=timer,
        status=status,
        end_reason=end_reason,
        updated_at=updated_at,
    )
    violation = check_invariants(state, catalog)
    if violation:
        raise SnapshotError(*violation)
    if state.status == STATUS_ACTIVE and state.pending_check is None and is_complete(state):
        state.status = STATUS_COMPLETED
    return state


def progress_key(state: GameState) -> Tuple[int, int]:
    """Ordering of states across peers: history length, then resolved-ness."""
    return len(state.move_history), 0 if state.pending_check else 1


class Replicator:
    """Owns one peer's view of a game.

    Local commands go through the engine, are committed, pushed to observers
    and handed to ``send``. Remote snapshots arrive through ``receive``.
    """

    def __init__(self, engine: Engine, state: Optional[GameState] = None,
                 send: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.engine = engine
        self.state = state
        self.send = send
        self._observers: List[Callable[[GameState], None]] = []

    @property
    def catalog(self) -> Catalog:
        return self.engine.catalog

    def subscribe(self, handler: Callable[[GameState], None]) -> Callable[[], None]:
        self._observers.append(handler)

        def unsubscribe():
            if handler in self._observers:
                self._observers.remove(handler)
        return unsubscribe

    def _notify(self) -> None:
        for handler in list(self._observers):
            handler(self.state)

    # ---- local commands ----

    def commit(self, result: CommandResult) -> CommandResult:
        if not result.ok:
            return result
        self.state = result.state
        self._notify()
        if self.send is not None:
            self.send(export_snapshot(self.state))
        return result

    def initialize(self, mode: str = DEFAULT_MODE, rng=None, timer_remaining: int = DEFAULT_TIMER_SEC) -> CommandResult:
        return self.commit(self.engine.initialize(mode, rng=rng, timer_remaining=timer_remaining))

    def place(self, player: str, piece_id: int, grid_index: int) -> CommandResult:
        return self.commit(self.engine.place(self.state, player, piece_id, grid_index))

    def decide(self, decider: str, decision: str) -> CommandResult:
        return self.commit(self.engine.decide(self.state, decider, decision))

    def use_hint(self, player: str, kind: str) -> CommandResult:
        return self.commit(self.engine.use_hint(self.state, player, kind))

    def tick(self, seconds: int = 1) -> CommandResult:
        return self.commit(self.engine.tick(self.state, seconds))

    def terminate(self, reason: str) -> CommandResult:
        return self.commit(self.engine.terminate(self.state, reason))

    def winner(self) -> Optional[str]:
        return winner(self.state) if self.state else None

    # ---- remote snapshots ----

    def _reject(self, exc: SnapshotError) -> CommandResult:
        logger.warning(f"[snapshot_rejected] invariant={exc.invariant} reason={exc.message}")
        return CommandResult(
            state=self.state,
            error=GameError(ErrorKind.SNAPSHOT_REJECTED, f'{exc.invariant}: {exc.message}'),
        )

    def receive(self, snapshot: Dict[str, Any]) -> CommandResult:
        """Apply a peer's snapshot unless it is older than what we hold."""
        try:
            incoming = import_snapshot(snapshot, self.catalog)
        except SnapshotError as exc:
            return self._reject(exc)

        if self.state is not None:
            local_key, remote_key = progress_key(self.state), progress_key(incoming)
            if remote_key < local_key:
                return CommandResult(state=self.state, outcome={'applied': False, 'reason': 'stale'})
            if remote_key == local_key and incoming.updated_at < self.state.updated_at:
                return CommandResult(state=self.state, outcome={'applied': False, 'reason': 'older'})
            if incoming == self.state:
                return CommandResult(state=self.state, outcome={'applied': False, 'reason': 'duplicate'})

        self.state = incoming
        self._notify()
        return CommandResult(state=self.state, outcome={'applied': True})

    # ---- persistence ----

    def export_for_persistence(self) -> Dict[str, Any]:
        return export_snapshot(self.state)

    def import_from_persistence(self, snapshot: Dict[str, Any]) -> CommandResult:
        """Resume a saved game; unlike ``receive`` there is no ordering check."""
        try:
            self.state = import_snapshot(snapshot, self.catalog)
        except SnapshotError as exc:
            return self._reject(exc)
        self._notify()
        return CommandResult(state=self.state, outcome={'applied': True})
