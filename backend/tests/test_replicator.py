import json
import logging
import random

import pytest

from app.services.puzzle.engine import Engine
from app.services.puzzle.errors import ErrorKind, SnapshotError
from app.services.puzzle.pieces import slice_grid
from app.services.puzzle.replicator import Replicator, export_snapshot, import_snapshot, progress_key
from app.services.puzzle.state import PLAYER_A, PLAYER_B, STATUS_COMPLETED

LOGGER = 'app.services.puzzle.replicator'


def _wire(snapshot):
    return json.loads(json.dumps(snapshot))


@pytest.fixture()
def catalog():
    return slice_grid(5, 5)


@pytest.fixture()
def host(catalog, clock):
    replicator = Replicator(Engine(catalog, clock=clock))
    assert replicator.initialize('CLASSIC', rng=random.Random(11)).ok
    return replicator


def _place_correct(replicator, player):
    piece_id = replicator.state.rack_pieces(player)[0]
    result = replicator.place(player, piece_id, piece_id)
    assert result.ok, result.error
    return result


def test_snapshot_survives_json(host, catalog):
    _place_correct(host, PLAYER_A)
    snapshot = _wire(export_snapshot(host.state))
    assert snapshot['grid'][snapshot['pendingCheck']['gridIndex']]['correctPosition'] is not None
    assert import_snapshot(snapshot, catalog) == host.state


def test_peers_converge_through_send_hooks(catalog, clock_factory):
    peer_a = Replicator(Engine(catalog, clock=clock_factory(1_000)))
    peer_b = Replicator(Engine(catalog, clock=clock_factory(5_000)))
    peer_a.send = lambda snapshot: peer_b.receive(_wire(snapshot))
    peer_b.send = lambda snapshot: peer_a.receive(_wire(snapshot))

    peer_a.initialize(rng=random.Random(3))
    assert peer_b.state == peer_a.state

    _place_correct(peer_a, PLAYER_A)
    assert peer_b.state.pending_check is not None
    assert peer_b.decide(PLAYER_B, 'check').ok
    assert peer_a.state == peer_b.state
    assert peer_a.state.current_turn == PLAYER_B
    assert peer_a.state.scores[PLAYER_A].score == 10


def test_stale_older_and_duplicate_snapshots_are_ignored(host, catalog):
    before = export_snapshot(host.state)
    _place_correct(host, PLAYER_A)
    after = export_snapshot(host.state)

    peer = Replicator(Engine(catalog))
    assert peer.receive(after).outcome == {'applied': True}
    assert peer.receive(before).outcome == {'applied': False, 'reason': 'stale'}
    assert peer.receive(after).outcome == {'applied': False, 'reason': 'duplicate'}

    older = dict(after, updatedAt=after['updatedAt'] - 10, timerRemaining=5)
    assert peer.receive(older).outcome == {'applied': False, 'reason': 'older'}
    assert peer.state.timer_remaining == after['timerRemaining']

    newer = dict(after, updatedAt=after['updatedAt'] + 10, timerRemaining=5)
    assert peer.receive(newer).outcome == {'applied': True}
    assert peer.state.timer_remaining == 5


def test_resolved_state_beats_pending_with_same_history(host):
    _place_correct(host, PLAYER_A)
    pending = host.state
    host.decide(PLAYER_B, 'pass')
    assert progress_key(host.state) > progress_key(pending)
    assert len(host.state.move_history) == len(pending.move_history)


def test_rejected_snapshot_keeps_prior_state(host, catalog, caplog):
    peer = Replicator(Engine(catalog))
    peer.receive(export_snapshot(host.state))
    prior = peer.state

    broken = export_snapshot(host.state)
    broken['piecePool'][0] = 99
    with caplog.at_level(logging.WARNING, logger=LOGGER):
        result = peer.receive(broken)
    assert result.error.kind == ErrorKind.SNAPSHOT_REJECTED
    assert result.error.message.startswith('conservation')
    assert peer.state is prior
    assert 'dropping unknown piece id=99' in caplog.text
    assert '[snapshot_rejected] invariant=conservation' in caplog.text


def test_duplicate_piece_is_an_identity_violation(host, catalog):
    broken = export_snapshot(host.state)
    broken['piecePool'].append(broken['playerARack'][0])
    with pytest.raises(SnapshotError) as excinfo:
        import_snapshot(broken, catalog)
    assert excinfo.value.invariant == 'identity'


def test_malformed_snapshots(catalog):
    peer = Replicator(Engine(catalog))
    assert peer.receive('nope').error.kind == ErrorKind.SNAPSHOT_REJECTED
    assert peer.receive({'grid': [None] * 25, 'timerRemaining': 'soon'}).error.kind == ErrorKind.SNAPSHOT_REJECTED
    assert peer.state is None


@pytest.mark.parametrize('field,value', [
    ('mode', 5),
    ('mode', ['CLASSIC']),
    ('mode', {'id': 'SUPER'}),
    ('endReason', 'bored'),
    ('endReason', 3),
])
def test_badly_typed_fields_are_rejected(host, catalog, field, value):
    peer = Replicator(Engine(catalog))
    assert peer.receive(export_snapshot(host.state)).ok
    before = peer.state

    snapshot = {**export_snapshot(host.state), field: value}
    result = peer.receive(snapshot)
    assert result.error.kind == ErrorKind.SNAPSHOT_REJECTED
    assert peer.state is before
    with pytest.raises(SnapshotError) as excinfo:
        import_snapshot(snapshot, catalog)
    assert excinfo.value.invariant == 'shape'
    assert peer.import_from_persistence(snapshot).error.kind == ErrorKind.SNAPSHOT_REJECTED


def test_imported_accuracy_follows_placement_counts(host, catalog):
    snapshot = export_snapshot(host.state)
    snapshot['scores'][PLAYER_A] = {'correctPlacements': 1, 'totalPlacements': 4, 'accuracy': 100}
    state = import_snapshot(snapshot, catalog)
    assert state.scores[PLAYER_A].accuracy == 25
    assert export_snapshot(state)['scores'][PLAYER_A]['accuracy'] == 25


def test_bare_integer_cells_are_not_placements(host, catalog):
    snapshot = export_snapshot(host.state)
    snapshot['grid'][0] = 7
    snapshot['grid'][1] = {'id': 'x', 'correctPosition': 1}
    state = import_snapshot(snapshot, catalog)
    assert state.grid[0] is None
    assert state.grid[1] is None
    assert state == host.state


def test_snake_case_keys_are_accepted(host, catalog):
    snapshot = export_snapshot(host.state)
    renamed = {
        'grid': snapshot['grid'],
        'player_a_rack': snapshot['playerARack'],
        'player_b_rack': snapshot['playerBRack'],
        'piece_pool': snapshot['piecePool'],
        'current_turn': snapshot['currentTurn'],
        'pending_check': snapshot['pendingCheck'],
        'move_history': snapshot['moveHistory'],
        'timer_remaining': snapshot['timerRemaining'],
        'scores': snapshot['scores'],
        'mode': snapshot['mode'],
        'status': snapshot['status'],
        'end_reason': snapshot['endReason'],
        'updated_at': snapshot['updatedAt'],
    }
    assert import_snapshot(renamed, catalog) == host.state


def test_rack_entries_may_be_piece_objects(host, catalog):
    snapshot = export_snapshot(host.state)
    snapshot['playerARack'] = [{'id': pid} if pid is not None else None for pid in snapshot['playerARack']]
    assert import_snapshot(snapshot, catalog) == host.state


def test_finished_board_imports_as_completed():
    catalog = slice_grid(2, 2)
    snapshot = {
        'grid': [{'id': i, 'correctPosition': i} for i in range(4)],
        'playerARack': [None, None],
        'playerBRack': [None, None],
        'piecePool': [],
        'currentTurn': PLAYER_B,
        'pendingCheck': None,
        'moveHistory': [],
        'timerRemaining': 30,
        'scores': {PLAYER_A: {'score': 10}, PLAYER_B: {'score': 4}},
        'mode': 'CLASSIC',
        'status': 'active',
        'updatedAt': 1,
    }
    replicator = Replicator(Engine(catalog))
    assert replicator.import_from_persistence(snapshot).ok
    assert replicator.state.status == STATUS_COMPLETED
    assert replicator.winner() == PLAYER_A


def test_subscribe_and_unsubscribe(host, catalog):
    seen = []
    unsubscribe = host.subscribe(seen.append)
    _place_correct(host, PLAYER_A)
    assert seen == [host.state]

    unsubscribe()
    host.decide(PLAYER_B, 'pass')
    assert len(seen) == 1
    unsubscribe()


def test_failed_command_is_not_committed(host):
    sent = []
    host.send = sent.append
    state = host.state
    result = host.place(PLAYER_B, 0, 0)
    assert not result.ok
    assert host.state is state
    assert sent == []


def test_persistence_import_skips_ordering(host, catalog):
    early = host.export_for_persistence()
    _place_correct(host, PLAYER_A)
    assert host.import_from_persistence(early).ok
    assert host.state.move_history == []
