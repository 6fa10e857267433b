"""
Tests for the extensions.json document.
"""

import json
from pathlib import Path

import pytest

from eplm.core.exceptions import StorageError
from eplm.core.models import ConfigEntry, ConfigManifest, ExtensionAuthor
from eplm.storage.config_file import ExtensionsConfigFile


@pytest.fixture
def config_file(temp_dir: Path) -> ExtensionsConfigFile:
    return ExtensionsConfigFile(temp_dir / "extensions" / "extensions.json")


def entry(identifier: str, version: str = "1.0.0", **kwargs) -> ConfigEntry:
    return ConfigEntry(
        manifest=ConfigManifest(
            identifier=identifier,
            name=identifier.title(),
            version=version,
            author=kwargs.pop("author", ExtensionAuthor(name="Ada")),
        ),
        **kwargs,
    )


class TestAddEntry:
    def test_creates_document(self, config_file):
        config_file.add_entry("blog", entry("blog"))

        document = json.loads(config_file.path.read_text())
        blog = document["applications"]["blog"]
        assert blog["manifest"]["version"] == "1.0.0"
        assert blog["manifest"]["author"] == {"avatar": "", "name": "Ada", "homepage": ""}
        assert blog["isLocal"] is False
        assert blog["enabled"] is True
        assert "installedAt" in blog
        assert config_file.path.read_text().startswith('{\n    "applications"')

    def test_replaces_existing_entry(self, config_file):
        config_file.add_entry("blog", entry("blog", "1.0.0"))
        config_file.add_entry("blog", entry("blog", "1.2.0"))

        assert config_file.read()["applications"]["blog"]["manifest"]["version"] == "1.2.0"

    def test_keeps_other_sections(self, config_file):
        config_file.path.parent.mkdir(parents=True)
        config_file.path.write_text(json.dumps({"functionals": {"pay": {"enabled": True}}, "extra": 1}))

        config_file.add_entry("blog", entry("blog"))

        document = config_file.read()
        assert document["functionals"] == {"pay": {"enabled": True}}
        assert document["extra"] == 1

    def test_unknown_section(self, config_file):
        with pytest.raises(StorageError):
            config_file.add_entry("blog", entry("blog"), section="widgets")

    def test_no_temp_files_left_behind(self, config_file):
        config_file.add_entry("blog", entry("blog"))

        assert [p.name for p in config_file.path.parent.iterdir()] == ["extensions.json"]


class TestRemoveEntry:
    def test_removes_from_any_section(self, config_file):
        config_file.path.parent.mkdir(parents=True)
        config_file.path.write_text(
            json.dumps({"functionals": {"pay": {"manifest": {"identifier": "pay"}}}})
        )

        assert config_file.remove_entry("pay") is True
        assert config_file.read()["functionals"] == {}

    def test_matches_manifest_identifier(self, config_file):
        config_file.add_entry("legacy-key", entry("blog"))

        assert config_file.remove_entry("blog") is True
        assert config_file.read()["applications"] == {}

    def test_missing_file_or_entry_is_soft(self, config_file):
        assert config_file.remove_entry("blog") is False

        config_file.add_entry("other", entry("other"))
        assert config_file.remove_entry("blog") is False


class TestUpdates:
    def test_set_enabled(self, config_file):
        config_file.add_entry("blog", entry("blog"))
        config_file.add_entry("shop", entry("shop"))

        assert config_file.set_enabled("blog", False) is True

        assert config_file.enabled_identifiers() == ["shop"]
        assert config_file.set_enabled("missing", True) is False

    def test_update_author_name(self, config_file):
        config_file.add_entry("blog", entry("blog", author=ExtensionAuthor(name="Ada", avatar="a.png")))

        assert config_file.update_author_name("blog", "Lovelace") is True

        author = config_file.read()["applications"]["blog"]["manifest"]["author"]
        assert author == {"avatar": "a.png", "name": "Lovelace", "homepage": ""}

    def test_update_author_name_without_document(self, config_file):
        assert config_file.update_author_name("blog", "Lovelace") is False


def test_read_missing_file(config_file):
    assert config_file.read() is None


def test_read_corrupt_file(config_file):
    config_file.path.parent.mkdir(parents=True)
    config_file.path.write_text("{broken")

    with pytest.raises(StorageError):
        config_file.read()
