"""Puzzle domain services: engine, scoring, modes and replication.

The engine, scoring, mode registry and replicator are pure and import
nothing from Flask; persistence and the timer scheduler are the only
modules that touch the database or Socket.IO.
"""

from .engine import CommandResult, Engine, TIE, is_complete, winner
from .errors import ErrorKind, GameError
from .modes import get_available_modes, get_mode
from .pieces import Catalog, Piece, slice_grid
from .replicator import Replicator, export_snapshot, import_snapshot
from .state import PLAYER_A, PLAYER_B, RACK_CAPACITY, GameState, Move
