import json
from datetime import datetime
from typing import Any, Dict, Optional

from app import db, socketio
from app.models import Game
from .engine import Engine, is_complete
from .errors import SnapshotError
from .pieces import Catalog, slice_grid
from .replicator import Replicator
from .state import PLAYER_A, PLAYER_B, STATUS_COMPLETED


def build_catalog(game: Game) -> Catalog:
    return slice_grid(game.rows, game.cols, image_ref=game.image_ref)


def load_replicator(game: Game) -> Replicator:
    """Rebuild the game's replicator from its persisted snapshot."""
    replicator = Replicator(Engine(build_catalog(game)))
    snapshot = game.load_snapshot()
    if snapshot is None:
        return replicator
    result = replicator.import_from_persistence(snapshot)
    if not result.ok:
        raise SnapshotError('persisted', f'game {game.game_code}: {result.error.message}')
    return replicator


def save_game(game: Game, replicator: Replicator) -> None:
    state = replicator.state
    game.snapshot = json.dumps(replicator.export_for_persistence())
    a, b = state.scores[PLAYER_A], state.scores[PLAYER_B]
    game.player_a_score, game.player_a_accuracy, game.player_a_streak = a.score, a.accuracy, a.streak
    game.player_b_score, game.player_b_accuracy, game.player_b_streak = b.score, b.accuracy, b.streak
    if state.status == STATUS_COMPLETED and game.status != 'completed':
        game.status = 'completed'
        game.winner = replicator.winner()
        game.completed_at = datetime.utcnow()
    db.session.add(game)
    db.session.commit()


def state_payload(game: Game, replicator: Replicator, outcome: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    state = replicator.state
    payload = {
        'game': game.to_dict(),
        'snapshot': replicator.export_for_persistence() if state else None,
        'isComplete': is_complete(state) if state else False,
        'winner': replicator.winner(),
    }
    if outcome is not None:
        payload['outcome'] = outcome
    return payload


def broadcast_state(game: Game, replicator: Replicator, skip_sid: Optional[str] = None) -> None:
    socketio.emit(
        'game_state',
        state_payload(game, replicator),
        to=f"game:{game.game_code}",
        namespace='/ws',
        skip_sid=skip_sid,
    )
