"""
config.py

Settings loader for marzdata.

Resolution order (later wins):
- built-in defaults (SQLite database under the user data directory)
- YAML/TOML file: explicit path, else $MARZDATA_CONFIG, else ./marzdata.yaml / ./marzdata.toml
- environment overrides: MARZDATA_DATABASE_URL, MARZDATA_SOURCE_PROJECTION,
  MARZDATA_DBF_ENCODING, MARZDATA_LEGACY_CODEPAGE, MARZDATA_DEDUPE_STRATEGY
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from platformdirs import user_data_dir

from .crs import IRAN_LCC
from .geometry import BBox
from .text import DEFAULT_LEGACY_CODEPAGE

__all__ = ["Settings", "load_settings", "default_database_url", "CONFIG_ENV"]

CONFIG_ENV = "MARZDATA_CONFIG"

_ENV_OVERRIDES = {
    "MARZDATA_DATABASE_URL": "database_url",
    "MARZDATA_SOURCE_PROJECTION": "source_projection",
    "MARZDATA_DBF_ENCODING": "dbf_encoding",
    "MARZDATA_LEGACY_CODEPAGE": "legacy_codepage",
    "MARZDATA_DEDUPE_STRATEGY": "dedupe_strategy",
}

# ------------------------------
# Loading utilities (YAML/TOML)
# ------------------------------


def _load_yaml(text: str) -> dict:
    import yaml  # PyYAML

    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML root must be a mapping (dict).")
    return data


def _load_toml(text: str) -> dict:
    import tomllib

    data = tomllib.loads(text)
    if not isinstance(data, dict):
        raise ValueError("TOML root must be a mapping (dict).")
    return data


def _detect_and_load(path: Path) -> dict:
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix in (".yaml", ".yml"):
        return _load_yaml(text)
    if suffix == ".toml":
        return _load_toml(text)
    return _load_yaml(text)


def _expand_path(value: str) -> str:
    """Expand ~ and $ENV in a path-like string, but leave URLs untouched."""
    if isinstance(value, str) and ("://" not in value):
        return os.path.expandvars(os.path.expanduser(value))
    return value


def default_database_url() -> str:
    data_dir = Path(user_data_dir("marzdata", "marzdata"))
    return f"sqlite:///{data_dir / 'boundaries.sqlite'}"


def _coerce_bboxes(raw: Any) -> Dict[str, BBox]:
    if not raw:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError("fallback_bboxes must map province names to [minLng, minLat, maxLng, maxLat]")
    out: Dict[str, BBox] = {}
    for name, values in raw.items():
        if not isinstance(values, (list, tuple)) or len(values) != 4:
            raise ValueError(f"fallback_bboxes[{name!r}] must have four numbers")
        min_lng, min_lat, max_lng, max_lat = (float(v) for v in values)
        if min_lng >= max_lng or min_lat >= max_lat:
            raise ValueError(f"fallback_bboxes[{name!r}] is degenerate")
        out[str(name)] = (min_lng, min_lat, max_lng, max_lat)
    return out


@dataclass
class Settings:
    database_url: str = field(default_factory=default_database_url)
    source_projection: str = IRAN_LCC
    dbf_encoding: str = "latin-1"
    legacy_codepage: str = DEFAULT_LEGACY_CODEPAGE
    dedupe_strategy: str = "union"
    default_page_size: int = 50
    max_page_size: int = 200
    index_cache_levels: int = 4
    parent_workers: int = 1
    fallback_bboxes: Dict[str, BBox] = field(default_factory=dict)

    def __post_init__(self):
        self.dedupe_strategy = str(self.dedupe_strategy).strip().lower().replace("_", "-")
        if self.dedupe_strategy not in ("union", "first-seen"):
            raise ValueError(
                f"dedupe_strategy must be 'union' or 'first-seen', got {self.dedupe_strategy!r}"
            )
        self.default_page_size = int(self.default_page_size)
        self.max_page_size = int(self.max_page_size)
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError("default_page_size must be between 1 and max_page_size")
        self.index_cache_levels = max(1, int(self.index_cache_levels))
        self.parent_workers = max(1, int(self.parent_workers))
        self.fallback_bboxes = _coerce_bboxes(self.fallback_bboxes)
        self.database_url = _expand_path(self.database_url)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValueError(f"unknown settings: {', '.join(unknown)}")
        return cls(**dict(d))


def _discover(path: Optional[str | Path]) -> Optional[Path]:
    if path is not None:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(p)
        return p
    env = os.environ.get(CONFIG_ENV)
    if env:
        p = Path(_expand_path(env))
        if not p.exists():
            raise FileNotFoundError(p)
        return p
    for candidate in ("marzdata.yaml", "marzdata.yml", "marzdata.toml"):
        p = Path.cwd() / candidate
        if p.exists():
            return p
    return None


def load_settings(
    path: Optional[str | Path] = None, *, env: Optional[Mapping[str, str]] = None
) -> Settings:
    env = os.environ if env is None else env
    raw: Dict[str, Any] = {}
    source = _discover(path)
    if source is not None:
        raw.update(_detect_and_load(source))
    for var, key in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            raw[key] = value
    return Settings.from_dict(raw)

