import json
import logging

import pytest
import shapefile

from marzdata.config import Settings
from marzdata.exceptions import ReprojectionUnavailableError
from marzdata.levels import Level
from marzdata.pipeline import import_all, import_level


def _ring(min_x, min_y, max_x, max_y):
    # clockwise: shapefile outer ring convention
    return [[min_x, min_y], [min_x, max_y], [max_x, max_y], [max_x, min_y], [min_x, min_y]]


def _write_shapefile(path, fields, rows, encoding="cp1256"):
    with shapefile.Writer(str(path), shapeType=shapefile.POLYGON, encoding=encoding) as w:
        for name in fields:
            w.field(name, "C", size=80)
        for rings, values in rows:
            w.poly(rings)
            w.record(*values)
    return path


def _settings(tmp_path, **kw):
    return Settings(database_url=f"sqlite:///{tmp_path / 'b.sqlite'}", **kw)


def test_projected_tehran_import(store, tmp_path):
    shp = _write_shapefile(
        tmp_path / "ostan.shp",
        ["NAME", "Ostan_Name"],
        [([_ring(600000, 3900000, 650000, 3950000)], ["Tehran", "تهران"])],
    )

    report = import_level(store, "province", shp, _settings(tmp_path))

    assert report.read == 1
    assert report.reprojected == 1
    assert report.stored == 1
    stored = store.boundaries("province")
    assert len(stored) == 1
    tehran = stored[0]
    assert tehran.level is Level.PROVINCE
    assert tehran.name == "Tehran"
    assert tehran.name_fa == "تهران"
    assert -180 <= tehran.bbox[0] <= tehran.bbox[2] <= 180
    assert report.text_repairs >= 1


def test_duplicate_features_union_into_one_record(store, tmp_path):
    shp = _write_shapefile(
        tmp_path / "ostan.shp",
        ["NAME"],
        [
            ([_ring(55, 26, 57, 27.5)], ["Hormozgan"]),
            ([_ring(57.5, 25.5, 58, 26)], ["Hormozgan"]),
            ([_ring(50.5, 34.9, 53, 36.3)], ["Tehran"]),
        ],
    )
    report = import_level(store, "province", shp, _settings(tmp_path))

    assert report.merged == 1
    assert report.stored == 2
    hormozgan = store.find_by_name_and_level("Hormozgan", "province")
    assert hormozgan.geometry["type"] == "MultiPolygon"
    assert hormozgan.bbox == (55.0, 25.5, 58.0, 27.5)


def test_first_seen_strategy_flag(store, tmp_path):
    shp = _write_shapefile(
        tmp_path / "ostan.shp",
        ["NAME"],
        [([_ring(55, 26, 57, 27.5)], ["Hormozgan"]), ([_ring(57.5, 25.5, 58, 26)], ["Hormozgan"])],
    )
    report = import_level(store, "province", shp, _settings(tmp_path), strategy="first-seen")
    assert report.dropped == 1
    assert store.find_by_name_and_level("Hormozgan", "province").geometry["type"] == "Polygon"


def test_reprojection_unavailable_leaves_store_untouched(store, tmp_path):
    good = _write_shapefile(tmp_path / "a.shp", ["NAME"], [([_ring(51, 35, 52, 36)], ["Tehran"])])
    import_level(store, "province", good, _settings(tmp_path))

    bad = _write_shapefile(
        tmp_path / "b.shp", ["NAME"], [([_ring(600000, 3900000, 650000, 3950000)], ["Tehran"])]
    )
    with pytest.raises(ReprojectionUnavailableError):
        import_level(store, "province", bad, _settings(tmp_path, source_projection="+proj=bogus"))

    assert store.find_by_name_and_level("Tehran", "province").bbox == (51.0, 35.0, 52.0, 36.0)


def test_emit_and_dry_run_then_reimport_json(store, tmp_path, caplog):
    shp = _write_shapefile(
        tmp_path / "shahrestan.shp",
        ["County", "NAME_FA"],
        [([_ring(49.3, 36.9, 49.9, 37.5)], ["Rasht", "رشت"])],
    )
    out = tmp_path / "out" / "counties.json"

    with caplog.at_level(logging.INFO, logger="marzdata.pipeline"):
        report = import_level(store, "county", shp, _settings(tmp_path), emit=out, dry_run=True)

    assert report.dry_run and report.stored == 0
    assert store.count("county") == 0
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["level"] == "county"
    assert payload["boundaries"][0]["nameFa"] == "رشت"
    assert "convertedAt" in payload
    assert any("pipeline.import_done" in rec.getMessage() for rec in caplog.records)

    again = import_level(store, "county", out, _settings(tmp_path))
    assert again.stored == 1
    assert store.find_by_name_and_level("رشت", "county").name == "Rasht"


def test_geojson_source_with_malformed_feature(store, tmp_path):
    path = tmp_path / "bakhsh.geojson"
    path.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {"type": "Feature", "properties": {"Bakhsh": "Kuchesfahan"}, "geometry": {"type": "Polygon", "coordinates": [_ring(49.6, 37.2, 49.8, 37.4)]}},
                    {"type": "Feature", "properties": {"Bakhsh": "Broken"}, "geometry": None},
                ],
            }
        ),
        encoding="utf-8",
    )
    report = import_level(store, "bakhsh", path, _settings(tmp_path))
    assert report.read == 2
    assert report.skipped == 1
    assert report.stored == 1


def test_import_all_resolves_hierarchy(store, tmp_path):
    ostan = _write_shapefile(tmp_path / "ostan.shp", ["NAME"], [([_ring(48.5, 36.5, 50.4, 38.5)], ["Gilan"])])
    shahrestan = _write_shapefile(tmp_path / "shahrestan.shp", ["NAME"], [([_ring(49.3, 36.9, 49.9, 37.5)], ["Rasht"])])
    bakhsh = _write_shapefile(tmp_path / "bakhsh.shp", ["NAME"], [([_ring(49.6, 37.2, 49.8, 37.4)], ["Kuchesfahan"])])

    reports, parents = import_all(
        store,
        {"bakhsh": bakhsh, "province": ostan, "county": shahrestan},
        _settings(tmp_path),
    )

    assert list(reports) == [Level.PROVINCE, Level.COUNTY, Level.BAKHSH]
    assert parents[Level.COUNTY].updated == 1
    assert parents[Level.BAKHSH].updated == 1
    assert store.find_by_name_and_level("Kuchesfahan", "bakhsh").parent == "Rasht"


def _canonical(path, level, records):
    path.write_text(json.dumps({"level": level, "source": None, "boundaries": records}), encoding="utf-8")
    return path


def _square(min_x, min_y, max_x, max_y):
    return {"type": "Polygon", "coordinates": [_ring(min_x, min_y, max_x, max_y)]}


def test_canonical_json_bbox_is_recomputed(store, tmp_path):
    path = _canonical(
        tmp_path / "provinces.json",
        "province",
        [{"name": "Tehran", "geometry": _square(51, 35, 52, 36), "bbox": [0, 0, 1, 1]}],
    )
    import_level(store, "province", path, _settings(tmp_path))
    assert store.find_by_name_and_level("Tehran", "province").bbox == (51.0, 35.0, 52.0, 36.0)


def test_canonical_json_skips_bad_records_and_keeps_the_rest(store, tmp_path, caplog):
    path = _canonical(
        tmp_path / "provinces.json",
        "province",
        [
            {"name": "Tehran", "geometry": _square(51, 35, 52, 36)},
            {"name": "Bad", "geometry": _square(600000, 3900000, 650000, 3950000)},
            {"name": "Broken"},
            {"name": "Dot", "geometry": {"type": "Point", "coordinates": [51.0, 35.0]}},
        ],
    )
    with caplog.at_level(logging.WARNING, logger="marzdata.pipeline"):
        report = import_level(store, "province", path, _settings(tmp_path))

    assert report.read == 4
    assert report.skipped == 3
    assert report.stored == 1
    assert len(report.skipped_reasons) == 3
    assert store.count("province") == 1
    assert store.find_by_name_and_level("Tehran", "province") is not None
    assert sum("pipeline.skipped_feature" in rec.getMessage() for rec in caplog.records) == 3
