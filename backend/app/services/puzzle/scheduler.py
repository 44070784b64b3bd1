import time
from typing import Set

from app import db, socketio
from app.models import Game
from .persistence import broadcast_state, load_replicator, save_game


_scheduled_games: Set[int] = set()


def schedule_game_timer(app, game_id: int) -> None:
    """Drive the game clock for an active game.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per game
    - Ticks the engine every TIMER_TICK_SEC; the engine terminates the game
      with reason ``timeout`` when the clock reaches zero
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    if game_id in _scheduled_games:
        app.logger.info(f"[timer-skip] game={game_id} already scheduled")
        return
    _scheduled_games.add(game_id)

    step = max(1, int(app.config.get('TIMER_TICK_SEC', 1)))
    heartbeat = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
    app.logger.info(f"[timer-set] game={game_id} step={step}s")

    def _worker(gid: int):
        since_heartbeat = 0
        try:
            while True:
                time.sleep(step)
                with app.app_context():
                    game = Game.query.filter_by(id=gid).with_for_update().first()
                    if not game or game.status != 'active':
                        app.logger.info(f"[timer-abort] game={gid} not active")
                        return
                    replicator = load_replicator(game)
                    result = replicator.tick(step)
                    if not result.ok:
                        app.logger.info(f"[timer-abort] game={gid} {result.error.kind.value}")
                        db.session.rollback()
                        return
                    save_game(game, replicator)
                    remaining = result.outcome['timerRemaining']
                    socketio.emit(
                        'timer',
                        {'game_code': game.game_code, 'timerRemaining': remaining},
                        to=f"game:{game.game_code}",
                        namespace='/ws',
                    )
                    since_heartbeat += step
                    if heartbeat > 0 and since_heartbeat >= heartbeat:
                        since_heartbeat = 0
                        app.logger.info(f"[timer-heartbeat] game={gid} remaining={remaining}s")
                    if result.outcome['expired']:
                        app.logger.info(f"[timer-expired] game={gid} winner={result.outcome.get('winner')}")
                        broadcast_state(game, replicator)
                        return
        finally:
            _scheduled_games.discard(gid)

    if app.config.get('TESTING'):
        _worker(game_id)
    else:
        socketio.start_background_task(_worker, game_id)
