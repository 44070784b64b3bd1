import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

from .errors import CatalogError, UnknownPieceError

# Square sizes that keep a square grid regardless of the image aspect ratio
STANDARD_SQUARE_SIZES = (5, 8, 10, 12, 15)


@dataclass(frozen=True)
class Edges:
    top: bool = False
    bottom: bool = False
    left: bool = False
    right: bool = False

    def count(self) -> int:
        return sum((self.top, self.bottom, self.left, self.right))

    def is_corner(self) -> bool:
        return (self.top or self.bottom) and (self.left or self.right)

    def to_dict(self) -> Dict[str, bool]:
        return {'top': self.top, 'bottom': self.bottom, 'left': self.left, 'right': self.right}


@dataclass(frozen=True)
class Piece:
    """One tile of the sliced image.

    ``image_data`` is an opaque reference owned by the image processor. It is
    never serialised and does not take part in equality.
    """
    id: int
    correct_position: int
    row: int
    col: int
    is_edge: bool
    edges: Edges
    image_data: Any = field(default=None, compare=False, repr=False)

    def is_strict_edge(self) -> bool:
        return self.is_edge and self.edges.count() == 1

    def is_corner(self) -> bool:
        return self.edges.is_corner()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'correctPosition': self.correct_position,
            'row': self.row,
            'col': self.col,
            'isEdge': self.is_edge,
            'edges': self.edges.to_dict(),
        }


def grid_dimensions(grid_size: int, aspect_ratio: float = 1.0) -> Tuple[int, int]:
    """Return ``(rows, cols)`` for a requested grid size.

    Standard sizes stay square; other sizes follow the image aspect ratio.
    """
    rows = cols = grid_size
    if grid_size not in STANDARD_SQUARE_SIZES:
        if aspect_ratio > 1:
            rows = max(1, int(math.floor(grid_size / aspect_ratio + 0.5)))
        elif aspect_ratio < 1:
            cols = max(1, int(math.floor(grid_size * aspect_ratio + 0.5)))
    return rows, cols


def slice_grid(rows: int, cols: int, image_ref: Optional[str] = None) -> 'Catalog':
    """Build the piece catalog for a row-major ``rows`` x ``cols`` slice."""
    if rows <= 0 or cols <= 0:
        raise CatalogError(f'Invalid grid dimensions {rows}x{cols}')
    pieces = []
    for row in range(rows):
        for col in range(cols):
            index = row * cols + col
            edges = Edges(
                top=row == 0,
                bottom=row == rows - 1,
                left=col == 0,
                right=col == cols - 1,
            )
            pieces.append(Piece(
                id=index,
                correct_position=index,
                row=row,
                col=col,
                is_edge=edges.count() > 0,
                edges=edges,
                image_data=f'{image_ref}#{index}' if image_ref else None,
            ))
    return Catalog(pieces)


class Catalog:
    """Immutable, id-indexed piece set shared by both peers."""

    def __init__(self, pieces: Iterable[Piece]):
        ordered = tuple(sorted(pieces, key=lambda p: p.id))
        for index, piece in enumerate(ordered):
            if piece.id != index:
                raise CatalogError(f'Piece ids must be dense from 0, missing id {index}')
        self._pieces = ordered
        self.rows = max((p.row for p in ordered), default=-1) + 1
        self.cols = max((p.col for p in ordered), default=-1) + 1

    @classmethod
    def from_slices(cls, items: Iterable[Dict[str, Any]], expected: Optional[int] = None) -> 'Catalog':
        """Build a catalog from image processor output.

        Raises ``CatalogError`` when the slice set is incomplete, so a joining
        peer never imports a snapshot against a partial catalog.
        """
        pieces = []
        for item in items:
            try:
                raw_edges = item.get('edges') or {}
                pieces.append(Piece(
                    id=int(item['id']),
                    correct_position=int(item.get('correctPosition', item['id'])),
                    row=int(item['row']),
                    col=int(item['col']),
                    is_edge=bool(item.get('isEdge', False)),
                    edges=Edges(
                        top=bool(raw_edges.get('top')),
                        bottom=bool(raw_edges.get('bottom')),
                        left=bool(raw_edges.get('left')),
                        right=bool(raw_edges.get('right')),
                    ),
                    image_data=item.get('imageData'),
                ))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise CatalogError(f'Malformed slice metadata: {exc}') from exc
        if expected is not None and len(pieces) != expected:
            raise CatalogError(f'Expected {expected} pieces, got {len(pieces)}')
        return cls(pieces)

    def __len__(self) -> int:
        return len(self._pieces)

    def __iter__(self) -> Iterator[Piece]:
        return iter(self._pieces)

    def __contains__(self, piece_id) -> bool:
        return isinstance(piece_id, int) and not isinstance(piece_id, bool) and 0 <= piece_id < len(self._pieces)

    def __getitem__(self, piece_id: int) -> Piece:
        return self.get(piece_id)

    def get(self, piece_id: int) -> Piece:
        if piece_id not in self:
            raise UnknownPieceError(piece_id)
        return self._pieces[piece_id]

    def ids(self) -> Tuple[int, ...]:
        return tuple(p.id for p in self._pieces)
