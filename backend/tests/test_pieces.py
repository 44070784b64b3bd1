import pytest

from app.services.puzzle.errors import CatalogError, UnknownPieceError
from app.services.puzzle.pieces import Catalog, grid_dimensions, slice_grid


def test_slice_grid_marks_edges_and_corners():
    catalog = slice_grid(3, 4, image_ref='cat.png')
    assert len(catalog) == 12
    assert (catalog.rows, catalog.cols) == (3, 4)

    corner = catalog[0]
    assert corner.is_corner() and not corner.is_strict_edge()
    top = catalog[1]
    assert top.is_strict_edge() and top.edges.top
    middle = catalog[5]
    assert not middle.is_edge
    assert catalog[11].edges.bottom and catalog[11].edges.right
    assert catalog[7].correct_position == 7
    assert catalog[7].image_data == 'cat.png#7'


def test_image_data_is_not_part_of_equality():
    assert slice_grid(2, 2, image_ref='a.png')[3] == slice_grid(2, 2, image_ref='b.png')[3]
    assert 'image' not in str(slice_grid(2, 2, image_ref='a.png')[0].to_dict())


@pytest.mark.parametrize('size,ratio,expected', [
    (10, 2.0, (10, 10)),
    (9, 1.5, (6, 9)),
    (9, 0.5, (9, 5)),
    (7, 1.0, (7, 7)),
])
def test_grid_dimensions(size, ratio, expected):
    assert grid_dimensions(size, ratio) == expected


def test_catalog_lookup():
    catalog = slice_grid(2, 2)
    assert 3 in catalog
    assert 4 not in catalog
    assert True not in catalog
    assert catalog.ids() == (0, 1, 2, 3)
    with pytest.raises(UnknownPieceError) as excinfo:
        catalog.get(9)
    assert excinfo.value.piece_id == 9


def test_catalog_from_slices():
    items = [piece.to_dict() for piece in slice_grid(2, 3)]
    catalog = Catalog.from_slices(reversed(items), expected=6)
    assert catalog.ids() == tuple(range(6))
    assert catalog[4].edges.bottom

    with pytest.raises(CatalogError):
        Catalog.from_slices(items[:5], expected=6)
    with pytest.raises(CatalogError):
        Catalog.from_slices(items[1:])
    with pytest.raises(CatalogError):
        Catalog.from_slices([{'id': 0}])


def test_slice_grid_rejects_empty_dimensions():
    with pytest.raises(CatalogError):
        slice_grid(0, 4)
