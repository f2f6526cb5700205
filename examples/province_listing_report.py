"""Summarize located entities per province inside a map viewport.

Imports the three boundary layers (when the shapefiles are present), backfills
parents, then pages through a viewport and prints a per-province count table.
"""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from marzdata import GeoEngine
from marzdata.config import load_settings
from marzdata.pipeline import import_all


# Adjust these values when running from an IDE.
RUN_CONFIG: dict[str, object] = {
    "data_dir": Path("data/shapefiles"),
    # [minLng, minLat, maxLng, maxLat]
    "viewport": [50.0, 34.5, 53.5, 37.0],
    "page_size": 200,
}

LAYERS = {
    "province": "ostan.shp",
    "county": "shahrestan.shp",
    "bakhsh": "bakhsh.shp",
}


def main() -> None:
    settings = load_settings()
    engine = GeoEngine.from_settings(settings)
    data_dir = Path(RUN_CONFIG["data_dir"])  # type: ignore[arg-type]

    sources = {lv: data_dir / name for lv, name in LAYERS.items() if (data_dir / name).exists()}
    if sources:
        reports, parents = import_all(engine.store, sources, settings)
        for level, report in reports.items():
            print(f"{level.value}: stored {report.stored} (skipped {report.skipped})")
        for level, res in parents.items():
            print(f"{level.value} parents: {res.updated} updated, {res.unresolved} unresolved")

    frames = []
    page = 1
    while True:
        result = engine.query_viewport(
            RUN_CONFIG["viewport"], page=page, limit=RUN_CONFIG["page_size"]  # type: ignore[arg-type]
        )
        frames.append(result.to_df())
        if not result.has_next_page:
            break
        page += 1

    engine.close()

    df = pd.concat(frames, ignore_index=True)
    if df.empty:
        print("No entities in viewport.")
        return
    summary = df.groupby("province", dropna=False).size().sort_values(ascending=False)
    print(summary.to_string())


if __name__ == "__main__":
    main()
