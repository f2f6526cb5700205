import pytest

from conftest import make_boundary
from marzdata.config import Settings
from marzdata.engine import GeoEngine
from marzdata.exceptions import InvalidBoundingBoxError
from marzdata.parents import ParentResolver
from marzdata.viewport import RegionFilter


def _engine(store, **settings):
    ParentResolver(store).resolve_all()
    return GeoEngine(store, Settings(database_url="sqlite://", **settings))


def test_get_boundary_geometry_returns_feature(populated_store):
    engine = _engine(populated_store)
    feature = engine.get_boundary_geometry("رشت", "county")
    assert feature["type"] == "Feature"
    assert feature["properties"] == {"name": "Rasht", "nameFa": "رشت", "level": "county"}
    assert feature["geometry"]["type"] == "Polygon"
    assert feature["bbox"] == [49.3, 36.9, 49.9, 37.5]


def test_missing_boundary_is_none(populated_store):
    assert _engine(populated_store).get_boundary_geometry("Atlantis", "province") is None


def test_boundary_geometry_lookup_ignores_case(populated_store):
    feature = _engine(populated_store).get_boundary_geometry("tehran", "province")
    assert feature is not None
    assert feature["properties"]["name"] == "Tehran"


def test_list_children_and_sections(populated_store):
    engine = _engine(populated_store)
    assert engine.list_children("Gilan", "province") == [
        {"name": "Rasht", "nameFa": "رشت", "level": "county"}
    ]
    sections = engine.list_sections("گیلان")
    assert [s["name"] for s in sections] == ["Rasht", "Central Rasht", "Kuchesfahan"]
    assert [s["level"] for s in sections] == ["county", "bakhsh", "bakhsh"]


def test_list_provinces_deduplicated_by_localized_name(store):
    store.replace_level(
        "province",
        [
            make_boundary("province", "Tehran", (50.5, 34.9, 53.0, 36.3), name_fa="تهران"),
            make_boundary("province", "Tehran Province", (53.5, 34.9, 54.0, 36.3), name_fa="تهران"),
            make_boundary("province", "Alborz", (50.0, 35.5, 51.0, 36.5), name_fa="البرز"),
        ],
    )
    provinces = GeoEngine(store).list_provinces()
    assert [p["nameFa"] for p in provinces] == ["البرز", "تهران"]
    assert provinces[1]["name"] == "Tehran"


def test_entities_get_region_at_write_time_and_filter(populated_store):
    engine = _engine(populated_store)
    engine.add_entity("Tajrish", 51.43, 35.80)
    engine.add_entity("Rasht bazaar", 49.58, 37.28)

    page = engine.query_viewport([51, 35, 52, 36], RegionFilter(province="Tehran"))
    assert [e.name for e in page.items] == ["Tajrish"]
    assert page.items[0].region.county == "Tehran County"

    # localized spelling resolves to the stored canonical name
    page = engine.query_viewport([49, 36, 50, 38], RegionFilter(province="گیلان"))
    assert [e.name for e in page.items] == ["Rasht bazaar"]

    with pytest.raises(InvalidBoundingBoxError):
        engine.query_viewport([52, 35, 51, 36])


def test_refresh_entity_regions(populated_store):
    engine = _engine(populated_store)
    shop = engine.add_entity("Kiosk", 49.7, 37.3)
    lost = engine.add_entity("Buoy", 60.0, 20.0)
    assert lost.region.province is None

    populated_store.replace_level(
        "bakhsh", [make_boundary("bakhsh", "Khomam", (49.6, 37.2, 49.8, 37.4))]
    )

    dry = engine.refresh_entity_regions(dry_run=True)
    assert (dry.total, dry.updated, dry.not_found) == (2, 1, 1)
    assert engine.entities.get(shop.id).region.bakhsh == "Kuchesfahan"

    done = engine.refresh_entity_regions()
    assert done.updated == 1
    assert engine.entities.get(shop.id).region.bakhsh == "Khomam"
    assert engine.refresh_entity_regions().unchanged == 1


def test_resolve_region_uses_configured_fallbacks(store):
    engine = GeoEngine(store, Settings(database_url="sqlite://", fallback_bboxes={"Qom": [50.1, 34.1, 51.9, 35.2]}))
    result = engine.resolve_region_at_point(34.64, 50.88)
    assert result.province == "Qom"
    assert result.source == "fallback"
