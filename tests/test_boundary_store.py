import pytest

from conftest import make_boundary, square
from marzdata.boundary_store import BoundaryStore
from marzdata.exceptions import MalformedGeometryError, StoreUnavailableError
from marzdata.levels import Level


def test_find_containing_inside_and_outside(populated_store):
    found = populated_store.find_containing("province", (51.4, 35.7))
    assert found is not None
    assert found.name == "Tehran"
    assert populated_store.find_containing("province", (60.0, 29.0)) is None


def test_find_containing_counts_edge_points(populated_store):
    found = populated_store.find_containing("county", (49.3, 37.0))
    assert found is not None and found.name == "Rasht"


def test_find_all_containing_regions(populated_store):
    match = populated_store.find_all_containing_regions((49.7, 37.3))
    assert match.province.name == "Gilan"
    assert match.county.name == "Rasht"
    assert match.bakhsh.name == "Kuchesfahan"


def test_find_by_name_and_level_matches_either_spelling(populated_store):
    assert populated_store.find_by_name_and_level("Rasht", "county").name_fa == "رشت"
    assert populated_store.find_by_name_and_level("رشت", "county").name == "Rasht"
    assert populated_store.find_by_name_and_level("Rasht", "province") is None
    assert populated_store.find_by_name_and_level("  ", "county") is None


def test_find_by_name_and_level_ignores_case(populated_store):
    assert populated_store.find_by_name_and_level("tehran", "province").name == "Tehran"
    assert populated_store.find_by_name_and_level(" RASHT ", "county").name == "Rasht"


def test_replace_level_is_a_full_swap(populated_store):
    populated_store.replace_level(
        "county", [make_boundary("county", "Lahijan", (50.0, 37.0, 50.2, 37.3))]
    )
    assert [b.name for b in populated_store.boundaries("county")] == ["Lahijan"]
    # cached index must not serve the old level
    assert populated_store.find_containing("county", (49.7, 37.3)) is None
    assert populated_store.find_containing("county", (50.1, 37.1)).name == "Lahijan"
    assert populated_store.count("province") == 2


def test_replace_level_rejects_bad_input_without_touching_store(populated_store):
    with pytest.raises(ValueError, match="duplicate"):
        populated_store.replace_level(
            "county",
            [
                make_boundary("county", "Rasht", (0, 0, 1, 1)),
                make_boundary("county", "RASHT", (2, 2, 3, 3)),
            ],
        )
    with pytest.raises(ValueError, match="cannot store province"):
        populated_store.replace_level("county", [make_boundary("province", "Tehran", (0, 0, 1, 1))])

    far = make_boundary("county", "Far", (0, 0, 1, 1))
    far.geometry = square(600000, 3900000, 610000, 3910000)
    with pytest.raises(MalformedGeometryError):
        populated_store.replace_level("county", [far])

    assert populated_store.count("county") == 2


def test_children_and_parent_backfill(populated_store):
    assert populated_store.find_children("Gilan", "province") == []
    assert len(populated_store.unresolved("county")) == 2

    assert populated_store.set_parent("county", "Rasht", "Gilan")
    children = populated_store.find_children("گیلان", Level.PROVINCE)
    assert [c.name for c in children] == ["Rasht"]
    assert children[0].parent_level is Level.PROVINCE
    assert [b.name for b in populated_store.unresolved("county")] == ["Tehran County"]
    assert populated_store.find_children("Kuchesfahan", "bakhsh") == []


def test_set_parent_rejects_provinces(populated_store):
    with pytest.raises(ValueError):
        populated_store.set_parent("province", "Tehran", "Iran")


def test_index_cache_is_bounded(populated_store):
    populated_store.max_cache = 2
    for level in ("province", "county", "bakhsh"):
        populated_store.find_containing(level, (49.7, 37.3))
    assert list(populated_store._cache) == [Level.COUNTY, Level.BAKHSH]


def test_summary_and_duplicate_report(store):
    store.replace_level(
        "county",
        [
            make_boundary("county", "Rasht", (0, 0, 1, 1), name_fa="رشت"),
            make_boundary("county", "Rasht 2", (2, 2, 3, 3), name_fa="رشت"),
        ],
    )
    summary = store.levels_summary()
    assert summary["county"] == {"count": 2, "unresolved": 2}
    assert summary["province"] == {"count": 0, "unresolved": 0}
    assert store.duplicate_report("county") == [{"name_fa": "رشت", "names": ["Rasht", "Rasht 2"]}]


def test_unreachable_store_raises(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(StoreUnavailableError):
        BoundaryStore.from_url(f"sqlite:///{blocker / 'db.sqlite'}")


def test_store_over_in_memory_engine():
    from marzdata.persistence import create_sessionmaker, create_sqlite_memory_engine, ensure_schema

    engine = create_sqlite_memory_engine()
    ensure_schema(engine)
    store = BoundaryStore(create_sessionmaker(engine), engine=engine)
    store.replace_level("province", [make_boundary("province", "Qom", (50.1, 34.1, 51.9, 35.2))])
    assert store.find_containing(Level.PROVINCE, (50.88, 34.64)).name == "Qom"
    store.close()
