import pytest

from conftest import square
from marzdata.entities import Boundary, LocatedEntity
from marzdata.levels import Level, child_level, coerce_level, parent_level


def test_level_ordering():
    assert parent_level("county") is Level.PROVINCE
    assert parent_level(Level.PROVINCE) is None
    assert child_level("county") is Level.BAKHSH
    assert child_level("city") is None
    with pytest.raises(ValueError, match="unknown level"):
        coerce_level("village")


def test_boundary_defaults_localized_name_and_bbox():
    b = Boundary(level="county", name="Rasht", geometry=square(49.3, 36.9, 49.9, 37.5))
    assert b.level is Level.COUNTY
    assert b.name_fa == "Rasht"
    assert b.bbox == (49.3, 36.9, 49.9, 37.5)
    assert b.parent is None and b.parent_level is None


def test_boundary_parent_level_follows_hierarchy():
    b = Boundary(level="bakhsh", name="Kuchesfahan", parent="Rasht", geometry=square(0, 0, 1, 1))
    assert b.parent_level is Level.COUNTY

    with pytest.raises(ValueError, match="cannot have a parent"):
        Boundary(level="province", name="Tehran", parent="Iran", geometry=square(0, 0, 1, 1))

    with pytest.raises(ValueError, match="parent must be a county"):
        Boundary(
            level="bakhsh",
            name="Kuchesfahan",
            parent="Gilan",
            parent_level="province",
            geometry=square(0, 0, 1, 1),
        )


def test_boundary_null_parent_strings_are_unset():
    b = Boundary(level="county", name="Rasht", parent="null", geometry=square(0, 0, 1, 1))
    assert b.parent is None
    assert b.parent_level is None


def test_boundary_requires_name():
    with pytest.raises(ValueError, match="name must be a non-empty string"):
        Boundary(level="county", name="", geometry=square(0, 0, 1, 1))


def test_with_geometry_recomputes_bbox():
    b = Boundary(level="county", name="Rasht", geometry=square(0, 0, 1, 1))
    moved = b.with_geometry(square(10, 10, 12, 13))
    assert moved.bbox == (10.0, 10.0, 12.0, 13.0)
    assert b.bbox == (0.0, 0.0, 1.0, 1.0)


def test_boundary_dict_round_trip_keeps_both_names():
    b = Boundary(
        level="county",
        name="Rasht",
        name_fa="رشت",
        parent="Gilan",
        geometry=square(0, 0, 1, 1),
        metadata={"code": 7},
    )
    again = Boundary.from_dict(b.to_dict())
    assert again == b


def test_located_entity_serializes_point():
    e = LocatedEntity(name="Bakery", lng="51.4", lat=35.7)
    data = e.to_dict()
    assert data["location"] == {"type": "Point", "coordinates": [51.4, 35.7]}
    assert data["administrativeRegion"] == {"province": None, "county": None, "bakhsh": None}


def test_bbox_is_always_derived_from_geometry():
    data = {"level": "province", "name": "Tehran", "geometry": square(51, 35, 52, 36), "bbox": [0, 0, 1, 1]}
    b = Boundary.from_dict(data)
    assert b.bbox == (51.0, 35.0, 52.0, 36.0)

    with pytest.raises(TypeError):
        Boundary(level="province", name="Tehran", geometry=square(51, 35, 52, 36), bbox=(0, 0, 1, 1))
