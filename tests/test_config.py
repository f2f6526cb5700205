import pytest

from marzdata.config import Settings, load_settings
from marzdata.crs import IRAN_LCC


def test_defaults_without_config(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MARZDATA_CONFIG", raising=False)
    settings = load_settings(env={})
    assert settings.database_url.startswith("sqlite:///")
    assert settings.database_url.endswith("boundaries.sqlite")
    assert settings.source_projection == IRAN_LCC
    assert settings.dedupe_strategy == "union"
    assert settings.default_page_size == 50
    assert settings.max_page_size == 200


def test_yaml_file_and_env_overrides(tmp_path):
    cfg = tmp_path / "marzdata.yaml"
    cfg.write_text(
        "database_url: sqlite:///from-file.sqlite\n"
        "dedupe_strategy: first_seen\n"
        "fallback_bboxes:\n"
        "  Qom: [50.1, 34.1, 51.9, 35.2]\n",
        encoding="utf-8",
    )
    settings = load_settings(cfg, env={"MARZDATA_DATABASE_URL": "sqlite:///from-env.sqlite"})
    assert settings.database_url == "sqlite:///from-env.sqlite"
    assert settings.dedupe_strategy == "first-seen"
    assert settings.fallback_bboxes == {"Qom": (50.1, 34.1, 51.9, 35.2)}


def test_toml_discovered_from_env_var(tmp_path, monkeypatch):
    cfg = tmp_path / "settings.toml"
    cfg.write_text('dbf_encoding = "cp1252"\nparent_workers = 3\n', encoding="utf-8")
    monkeypatch.setenv("MARZDATA_CONFIG", str(cfg))
    settings = load_settings()
    assert settings.dbf_encoding == "cp1252"
    assert settings.parent_workers == 3


def test_rejects_unknown_and_invalid_settings(tmp_path):
    with pytest.raises(ValueError, match="unknown settings"):
        Settings.from_dict({"databse_url": "sqlite://"})
    with pytest.raises(ValueError, match="dedupe_strategy"):
        Settings(dedupe_strategy="newest")
    with pytest.raises(ValueError, match="degenerate"):
        Settings(fallback_bboxes={"X": [1, 1, 1, 2]})
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "missing.yaml")
