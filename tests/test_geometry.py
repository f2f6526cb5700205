import pytest

from conftest import square
from marzdata.exceptions import MalformedGeometryError
from marzdata.geometry import (
    compute_bbox,
    compute_centroid,
    first_vertex,
    merge_geometries,
    to_polygonal,
    validate_coordinate_range,
)


def test_bbox_covers_every_vertex_of_multipolygon():
    geom = {
        "type": "MultiPolygon",
        "coordinates": [
            square(0, 0, 1, 1)["coordinates"],
            square(5, -2, 6, 3)["coordinates"],
        ],
    }
    min_lng, min_lat, max_lng, max_lat = compute_bbox(geom)
    assert (min_lng, min_lat, max_lng, max_lat) == (0, -2, 6, 3)
    for ring in geom["coordinates"]:
        for x, y in ring[0]:
            assert min_lng <= x <= max_lng and min_lat <= y <= max_lat


def test_centroid_is_vertex_mean():
    # closing vertex counted twice
    cx, cy = compute_centroid(square(0, 0, 4, 4))
    assert cx == pytest.approx(1.6)
    assert cy == pytest.approx(1.6)


def test_empty_geometry_is_malformed():
    with pytest.raises(MalformedGeometryError):
        compute_bbox({"type": "Polygon", "coordinates": []})


def test_coordinate_range():
    assert validate_coordinate_range(square(50, 30, 52, 32))
    assert not validate_coordinate_range(square(600000, 3900000, 610000, 3910000))


def test_first_vertex_samples_outer_ring():
    assert first_vertex(square(3, 4, 5, 6)) == (3.0, 4.0)


def test_to_polygonal_repairs_bow_tie():
    bow_tie = {"type": "Polygon", "coordinates": [[[0, 0], [2, 2], [2, 0], [0, 2], [0, 0]]]}
    geom = to_polygonal(bow_tie)
    assert geom is not None
    assert geom.is_valid
    assert geom.geom_type in ("Polygon", "MultiPolygon")


def test_merge_keeps_disjoint_parts():
    merged = merge_geometries(square(0, 0, 1, 1), square(3, 3, 4, 4))
    assert merged.geom_type == "MultiPolygon"
    assert len(merged.geoms) == 2

    touching = merge_geometries(square(0, 0, 1, 1), square(1, 0, 2, 1))
    assert touching.geom_type == "Polygon"
