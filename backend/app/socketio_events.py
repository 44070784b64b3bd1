from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from app import db, socketio
from app.models import Game
from app.services.puzzle.errors import ErrorKind, GameError
from app.services.puzzle.persistence import broadcast_state, load_replicator, save_game
from typing import Dict, Any


_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _room(game_code: str) -> str:
    return f"game:{game_code.upper()}"


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    # Presence only; the engine does not care about connections
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    emit('peer_left', {'game_code': ctx['game_code'], 'player': ctx.get('player')},
         to=_room(ctx['game_code']), include_self=False)


def handle_join_game(data):
    game_code = (data or {}).get('game_code')
    player = (data or {}).get('player')
    if not game_code:
        emit('error', {'error': GameError(ErrorKind.INVALID_COMMAND, 'game_code is required').to_dict()})
        return
    room = _room(game_code)
    join_room(room)
    _sid_to_ctx[_get_sid()] = {'game_code': game_code.upper(), 'player': player}
    emit('joined', {'room': room})
    emit('peer_joined', {'game_code': game_code.upper(), 'player': player}, to=room, include_self=False)


def handle_leave_game(data):
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'error': GameError(ErrorKind.INVALID_COMMAND, 'game_code is required').to_dict()})
        return
    room = _room(game_code)
    leave_room(room)
    emit('left', {'room': room})
    ctx = _sid_to_ctx.pop(_get_sid(), None) or {}
    emit('peer_left', {'game_code': game_code.upper(), 'player': ctx.get('player')}, to=room)


def handle_ping(data):
    emit('pong', data or {})


def handle_snapshot(data):
    """A peer pushed its post-command snapshot; reconcile and relay it."""
    game_code = (data or {}).get('game_code')
    snapshot = (data or {}).get('snapshot')
    if not game_code:
        emit('error', {'error': GameError(ErrorKind.INVALID_COMMAND, 'game_code is required').to_dict()})
        return
    game = Game.query.filter_by(game_code=game_code.upper()).with_for_update().first()
    if not game:
        emit('error', {'error': GameError(ErrorKind.INVALID_COMMAND, 'Game not found').to_dict()})
        return
    replicator = load_replicator(game)
    result = replicator.receive(snapshot)
    if not result.ok:
        db.session.rollback()
        current_app.logger.info(f"[snapshot_rejected] game={game.game_code} reason={result.error.message}")
        emit('error', {'error': result.error.to_dict()})
        return
    if result.outcome.get('applied'):
        save_game(game, replicator)
        broadcast_state(game, replicator, skip_sid=_get_sid())
    else:
        db.session.rollback()
    emit('snapshot_ack', {'game_code': game.game_code, **result.outcome})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_game', handle_join_game, namespace=namespace)
        socketio.on_event('leave_game', handle_leave_game, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
        socketio.on_event('snapshot', handle_snapshot, namespace=namespace)
