"""
Tests for inventory_config.get_active_config().

Covers the shipped default settings, the database URL environment
override, checksum behaviour and rejection of invalid files.
"""

import pytest
import yaml

from inventory_config import DATABASE_URL_ENV, get_active_config
from inventory_kernel.services.item_catalog import DEFAULT_CATEGORIES


def write_settings(tmp_path, data, name="settings.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


@pytest.fixture
def minimal():
    return {
        "config_id": "greenhouse-a",
        "version": 3,
        "database": {"url": "sqlite:///greenhouse.db"},
        "categories": ["Seeds", "Tools"],
    }


class TestDefaultSettings:
    def test_shipped_defaults(self):
        settings = get_active_config(environ={})

        assert settings.config_id == "inventory-default"
        assert settings.database.url.startswith("sqlite:///")
        assert settings.categories == DEFAULT_CATEGORIES
        assert settings.logging.level == "INFO"
        assert len(settings.checksum) == 64

    def test_database_url_override(self):
        settings = get_active_config(
            environ={DATABASE_URL_ENV: "postgresql://inv@localhost/inventory"}
        )

        assert settings.database.url == "postgresql://inv@localhost/inventory"

    def test_override_changes_checksum(self):
        base = get_active_config(environ={})
        overridden = get_active_config(environ={DATABASE_URL_ENV: "sqlite:///other.db"})

        assert base.checksum != overridden.checksum


class TestCustomFiles:
    def test_minimal_file_uses_defaults(self, tmp_path, minimal):
        settings = get_active_config(write_settings(tmp_path, minimal), environ={})

        assert settings.version == 3
        assert settings.categories == ("Seeds", "Tools")
        assert settings.database.pool_size == 20
        assert settings.api.prefix == ""

    def test_prefix_trailing_slash_removed(self, tmp_path, minimal):
        minimal["api"] = {"prefix": "/api/v1/"}

        settings = get_active_config(write_settings(tmp_path, minimal), environ={})

        assert settings.api.prefix == "/api/v1"

    def test_checksum_is_stable(self, tmp_path, minimal):
        path = write_settings(tmp_path, minimal)

        assert get_active_config(path, environ={}).checksum == get_active_config(
            path, environ={}
        ).checksum

    @pytest.mark.parametrize(
        "patch",
        [
            {"categories": []},
            {"categories": ["Seeds", "Seeds"]},
            {"database": {"url": ""}},
            {"database": {"url": "sqlite://", "pool_size": 0}},
            {"logging": {"level": "LOUD"}},
        ],
    )
    def test_invalid_values(self, tmp_path, minimal, patch):
        minimal.update(patch)

        with pytest.raises(ValueError):
            get_active_config(write_settings(tmp_path, minimal), environ={})

    def test_missing_required_key(self, tmp_path, minimal):
        del minimal["config_id"]

        with pytest.raises(KeyError):
            get_active_config(write_settings(tmp_path, minimal), environ={})

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ValueError):
            get_active_config(path, environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml", environ={})

    def test_load_is_logged(self, tmp_path, minimal, captured_logs):
        get_active_config(write_settings(tmp_path, minimal), environ={})

        [record] = [r for r in captured_logs() if r["message"] == "inventory_config_loaded"]
        assert record["config_id"] == "greenhouse-a"
        assert record["database_url_overridden"] is False
