import pytest

from marzdata.boundary_store import BoundaryStore
from marzdata.entities import Boundary


def square(min_lng, min_lat, max_lng, max_lat):
    return {
        "type": "Polygon",
        "coordinates": [
            [
                [min_lng, min_lat],
                [max_lng, min_lat],
                [max_lng, max_lat],
                [min_lng, max_lat],
                [min_lng, min_lat],
            ]
        ],
    }


def make_boundary(level, name, box, *, name_fa="", parent=None):
    return Boundary(level=level, name=name, name_fa=name_fa, parent=parent, geometry=square(*box))


PROVINCES = [
    ("Tehran", "تهران", (50.5, 34.9, 53.0, 36.3)),
    ("Gilan", "گیلان", (48.5, 36.5, 50.4, 38.5)),
]
COUNTIES = [
    ("Tehran County", "شهرستان تهران", (51.0, 35.5, 51.7, 35.9)),
    ("Rasht", "رشت", (49.3, 36.9, 49.9, 37.5)),
]
BAKHSH = [
    ("Kuchesfahan", "کوچصفهان", (49.6, 37.2, 49.8, 37.4)),
    ("Central Rasht", "مرکزی رشت", (49.4, 37.0, 49.55, 37.15)),
]


@pytest.fixture
def store(tmp_path):
    s = BoundaryStore.from_url(f"sqlite:///{tmp_path / 'boundaries.sqlite'}")
    yield s
    s.close()


@pytest.fixture
def populated_store(store):
    store.replace_level(
        "province", [make_boundary("province", n, box, name_fa=fa) for n, fa, box in PROVINCES]
    )
    store.replace_level(
        "county", [make_boundary("county", n, box, name_fa=fa) for n, fa, box in COUNTIES]
    )
    store.replace_level(
        "bakhsh", [make_boundary("bakhsh", n, box, name_fa=fa) for n, fa, box in BAKHSH]
    )
    return store
