from flask import Blueprint, jsonify, request, current_app
from app import db
from app.models import Game
import random
from typing import Callable
from app.services.puzzle.engine import CommandResult, Engine
from app.services.puzzle.errors import CatalogError, ErrorKind, GameError
from app.services.puzzle.modes import get_mode
from app.services.puzzle.pieces import Catalog, grid_dimensions, slice_grid
from app.services.puzzle.replicator import Replicator
from app.services.puzzle.persistence import broadcast_state, build_catalog, load_replicator, save_game, state_payload
from app.services.puzzle.scheduler import schedule_game_timer as svc_schedule_game_timer
from app.services.puzzle.state import PLAYER_A, PLAYER_B


games = Blueprint('games', __name__)

_HTTP_STATUS = {
    ErrorKind.NOT_YOUR_TURN: 409,
    ErrorKind.PENDING_RESOLUTION: 409,
    ErrorKind.WRONG_DECIDER: 409,
    ErrorKind.NO_PENDING_CHECK: 409,
    ErrorKind.GAME_NOT_ACTIVE: 409,
    ErrorKind.HINT_BUDGET_EXHAUSTED: 403,
    ErrorKind.SNAPSHOT_REJECTED: 422,
}


def _error(kind: ErrorKind, message: str, status: int = None):
    err = GameError(kind, message)
    return jsonify({'error': err.to_dict()}), status or _HTTP_STATUS.get(err.kind, 400)


def _error_response(result: CommandResult):
    return _error(result.error.kind, result.error.message)


def _schedule_game_timer(app, game_id: int) -> None:
    svc_schedule_game_timer(app, game_id)


def _run_command(game_code: str, tag: str, command: Callable[[Replicator], CommandResult]):
    """Load the game, apply one engine command, persist and broadcast."""
    game = Game.query.filter_by(game_code=game_code.upper()).with_for_update().first_or_404()
    if game.status == 'waiting':
        db.session.rollback()
        return _error(ErrorKind.GAME_NOT_ACTIVE, 'Waiting for an opponent to join')
    replicator = load_replicator(game)
    result = command(replicator)
    if not result.ok:
        db.session.rollback()
        current_app.logger.info(f"[{tag}-rejected] game={game.game_code} kind={result.error.kind.value}")
        return _error_response(result)
    save_game(game, replicator)
    current_app.logger.info(f"[{tag}] game={game.game_code} outcome={result.outcome}")
    broadcast_state(game, replicator)
    return jsonify(state_payload(game, replicator, result.outcome))


@games.route('/create', methods=['POST'])
def create_game():
    data = request.get_json(silent=True) or {}
    cfg = current_app.config
    mode = get_mode(data.get('mode') or cfg.get('DEFAULT_MODE'))
    name = data.get('player_name') or 'Player A'
    try:
        if data.get('rows') is not None and data.get('cols') is not None:
            rows, cols = int(data['rows']), int(data['cols'])
        else:
            grid_size = int(data.get('grid_size') or cfg.get('DEFAULT_GRID_SIZE', 10))
            width, height = data.get('image_width'), data.get('image_height')
            aspect_ratio = float(width) / float(height) if width and height else 1.0
            rows, cols = grid_dimensions(grid_size, aspect_ratio)
        default_limit = cfg.get('GAME_TIME_LIMIT_SEC', 600) if mode.features.multiplayer \
            else cfg.get('SINGLE_PLAYER_TIME_LIMIT_SEC', 300)
        time_limit = int(data.get('time_limit') or default_limit)
        catalog = slice_grid(rows, cols, image_ref=data.get('image_ref'))
        if data.get('slices') is not None:
            # client-side slicing must agree with the row-major geometry we persist
            supplied = Catalog.from_slices(data['slices'], expected=len(catalog))
            if [piece.to_dict() for piece in supplied] != [piece.to_dict() for piece in catalog]:
                raise CatalogError(f'Slice metadata does not match a {rows}x{cols} grid')
    except (TypeError, ValueError, ZeroDivisionError, CatalogError) as exc:
        return _error(ErrorKind.INVALID_SETUP, f'Invalid puzzle settings: {exc}')

    seed = data.get('seed')
    replicator = Replicator(Engine(catalog))
    result = replicator.initialize(
        mode.id,
        rng=random.Random(seed) if seed is not None else None,
        timer_remaining=time_limit,
    )
    if not result.ok:
        return _error_response(result)

    new_game = Game(
        mode=mode.id,
        rows=rows,
        cols=cols,
        time_limit=time_limit,
        image_ref=data.get('image_ref'),
        player_a_name=name,
        status='waiting' if mode.features.multiplayer else 'active',
        code_length=int(cfg.get('GAME_CODE_LENGTH', 6)),
    )
    save_game(new_game, replicator)
    current_app.logger.info(f"[create] game={new_game.game_code} mode={mode.id} grid={rows}x{cols}")
    if new_game.status == 'active':
        _schedule_game_timer(current_app._get_current_object(), new_game.id)

    payload = state_payload(new_game, replicator)
    payload.update({'message': 'New game created!', 'game_code': new_game.game_code, 'player': PLAYER_A})
    return jsonify(payload), 201


@games.route('/join', methods=['POST'])
def join_game():
    data = request.get_json(silent=True) or {}
    game_code = data.get('game_code')
    name = data.get('player_name')
    if not all([game_code, name]):
        return _error(ErrorKind.INVALID_COMMAND, 'Game code and player name are required')

    game = Game.query.filter_by(game_code=game_code.upper()).with_for_update().first()
    if not game:
        return _error(ErrorKind.INVALID_COMMAND, 'Game not found', 404)
    if not get_mode(game.mode).features.multiplayer:
        db.session.rollback()
        return _error(ErrorKind.INVALID_COMMAND, 'Single player games cannot be joined', 403)
    if game.status != 'waiting':
        db.session.rollback()
        return _error(ErrorKind.GAME_NOT_ACTIVE, 'Game is not accepting players', 403)

    game.player_b_name = name
    game.status = 'active'
    db.session.add(game)
    db.session.commit()

    replicator = load_replicator(game)
    current_app.logger.info(f"[join] game={game.game_code} player_b={name}")
    broadcast_state(game, replicator)
    _schedule_game_timer(current_app._get_current_object(), game.id)

    payload = state_payload(game, replicator)
    payload.update({'message': f'Successfully joined game {game.game_code}', 'player': PLAYER_B})
    return jsonify(payload), 200


@games.route('/<string:game_code>/state', methods=['GET'])
def get_game_state(game_code):
    game = Game.query.filter_by(game_code=game_code.upper()).first_or_404()
    replicator = load_replicator(game)
    return jsonify(state_payload(game, replicator))


@games.route('/<string:game_code>/pieces', methods=['GET'])
def get_pieces(game_code):
    game = Game.query.filter_by(game_code=game_code.upper()).first_or_404()
    catalog = build_catalog(game)
    return jsonify({
        'rows': catalog.rows,
        'cols': catalog.cols,
        'pieces': [piece.to_dict() for piece in catalog],
    })


@games.route('/<string:game_code>/place', methods=['POST'])
def place_piece(game_code):
    data = request.get_json(silent=True) or {}
    return _run_command(
        game_code, 'place',
        lambda r: r.place(data.get('player'), data.get('piece_id'), data.get('grid_index')),
    )


@games.route('/<string:game_code>/decide', methods=['POST'])
def decide(game_code):
    data = request.get_json(silent=True) or {}
    return _run_command(
        game_code, 'decide',
        lambda r: r.decide(data.get('player'), data.get('decision')),
    )


@games.route('/<string:game_code>/hint', methods=['POST'])
def use_hint(game_code):
    data = request.get_json(silent=True) or {}
    return _run_command(
        game_code, 'hint',
        lambda r: r.use_hint(data.get('player'), data.get('kind')),
    )


@games.route('/<string:game_code>/tick', methods=['POST'])
def tick(game_code):
    data = request.get_json(silent=True) or {}
    return _run_command(game_code, 'tick', lambda r: r.tick(data.get('seconds', 1)))


@games.route('/<string:game_code>/terminate', methods=['POST'])
def terminate(game_code):
    data = request.get_json(silent=True) or {}
    return _run_command(game_code, 'terminate', lambda r: r.terminate(data.get('reason', 'timeout')))


@games.route('/<string:game_code>/snapshot', methods=['POST'])
def push_snapshot(game_code):
    """Ingest a snapshot produced by a peer running its own engine."""
    data = request.get_json(silent=True) or {}
    snapshot = data.get('snapshot')
    game = Game.query.filter_by(game_code=game_code.upper()).with_for_update().first_or_404()
    replicator = load_replicator(game)
    result = replicator.receive(snapshot)
    if not result.ok:
        db.session.rollback()
        return _error_response(result)
    if result.outcome.get('applied'):
        save_game(game, replicator)
        broadcast_state(game, replicator)
    else:
        db.session.rollback()
    return jsonify(state_payload(game, replicator, result.outcome))
