import random

import pytest

from app.services.puzzle.engine import Engine
from app.services.puzzle.errors import ErrorKind
from app.services.puzzle.pieces import slice_grid
from app.services.puzzle.replicator import export_snapshot, import_snapshot
from app.services.puzzle.scoring import HINT_COSTS, accuracy
from app.services.puzzle.state import PLAYERS, RACK_CAPACITY, STATUS_COMPLETED, check_invariants, opponent_of


def _random_step(engine, state, rng):
    pending = state.pending_check
    if pending is not None:
        return engine.decide(state, opponent_of(pending.player), rng.choice(('check', 'pass')))
    player = state.current_turn
    if not state.rack_pieces(player):
        # stranded: nothing to place and nothing left to draw
        return engine.terminate(state, 'abandoned')
    if rng.random() < 0.1:
        return engine.use_hint(state, player, rng.choice(list(HINT_COSTS)))
    piece_id = rng.choice(state.rack_pieces(player))
    empty = [i for i, cell in enumerate(state.grid) if cell is None]
    grid_index = piece_id if rng.random() < 0.5 else rng.choice(empty)
    return engine.place(state, player, piece_id, grid_index)


@pytest.mark.parametrize('seed', [1, 2, 3, 17, 99])
def test_random_games_keep_invariants(seed, clock):
    rng = random.Random(seed)
    engine = Engine(slice_grid(5, 5), clock=clock)
    state = engine.initialize('CLASSIC', rng=random.Random(seed)).state

    for _ in range(2000):
        if state.status == STATUS_COMPLETED:
            break
        previous = state
        result = _random_step(engine, state, rng)
        if not result.ok:
            assert result.error.kind == ErrorKind.HINT_BUDGET_EXHAUSTED
            assert result.state is previous
            continue
        state = result.state

        assert check_invariants(state, engine.catalog) is None
        for player in PLAYERS:
            record, before = state.scores[player], previous.scores[player]
            assert len(state.rack_pieces(player)) <= RACK_CAPACITY
            assert record.total_placements >= before.total_placements
            assert record.correct_placements >= before.correct_placements
            assert record.correct_placements <= record.total_placements
            assert record.accuracy == accuracy(record.correct_placements, record.total_placements)
            if record.total_placements > before.total_placements:
                # the streak only ever grows by one or resets
                assert record.streak in (0, before.streak + 1)

        if state.pending_check is not None:
            placer = state.pending_check.player
            assert state.current_turn == placer
            for player in PLAYERS:
                assert engine.place(state, player, 0, 0).error.kind == ErrorKind.PENDING_RESOLUTION
            assert engine.decide(state, placer, 'check').error.kind == ErrorKind.WRONG_DECIDER

        assert import_snapshot(export_snapshot(state), engine.catalog) == state

    assert state.status == STATUS_COMPLETED
    if state.end_reason == 'completed':
        assert all(cell is not None for cell in state.grid)


def test_random_solo_game_keeps_invariants(clock):
    rng = random.Random(5)
    engine = Engine(slice_grid(4, 4), clock=clock)
    state = engine.initialize('SINGLE_PLAYER', rng=random.Random(5), timer_remaining=50).state

    for _ in range(500):
        if state.status == STATUS_COMPLETED:
            break
        result = _random_step(engine, state, rng)
        if result.ok:
            state = result.state
        assert check_invariants(state, engine.catalog) is None
        assert state.pending_check is None

    assert state.status == STATUS_COMPLETED
    assert state.scores[PLAYERS[1]].total_placements == 0
