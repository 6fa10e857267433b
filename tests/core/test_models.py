"""
Tests for EPLM data models.
"""

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError as PydanticValidationError

from eplm.core.models import (
    ConfigEntry,
    ConfigManifest,
    CreateExtensionRequest,
    ExtensionAuthor,
    ExtensionDetail,
    ExtensionOrigin,
    ExtensionRecord,
    ExtensionStatus,
    VersionInfo,
)


class TestExtensionAuthor:
    def test_normalize_dict_fills_missing_fields(self):
        author = ExtensionAuthor.normalize({"name": "Ada", "avatar": None})
        assert author == ExtensionAuthor(avatar="", name="Ada", homepage="")

    def test_normalize_string(self):
        assert ExtensionAuthor.normalize("Ada").name == "Ada"

    @given(st.one_of(st.none(), st.integers(), st.lists(st.text())))
    def test_normalize_unknown_values_to_empty_author(self, value):
        assert ExtensionAuthor.normalize(value) == ExtensionAuthor()


class TestExtensionRecord:
    def test_defaults(self):
        record = ExtensionRecord(identifier="blog-ext", version="1.0.0")

        assert record.status == ExtensionStatus.ENABLED
        assert record.origin == ExtensionOrigin.MARKET
        assert not record.is_local

    def test_blank_identifier_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            ExtensionRecord(identifier="  ", version="1.0.0")


class TestRegistryPayloads:
    def test_detail_accepts_registry_field_names(self):
        detail = ExtensionDetail.model_validate(
            {
                "identifier": "blog-ext",
                "name": "Blog",
                "supportTerminal": [1, 2],
                "author": "Ada",
                "content": "# Docs",
                "unknownField": True,
            }
        )

        assert detail.supported_terminals == ["1", "2"]
        assert detail.author.name == "Ada"
        assert detail.content == "# Docs"

    def test_version_info_alias(self):
        info = VersionInfo.model_validate({"version": "1.2.0", "createdAt": "2024-01-01"})
        assert info.created_at == "2024-01-01"


class TestCreateExtensionRequest:
    def test_version_defaults(self):
        request = CreateExtensionRequest(name="Blog", identifier="blog-ext")
        assert request.version == "0.0.1"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": ""},
            {"name": "   "},
            {"identifier": "x" * 101},
            {"version": "1" * 21},
        ],
    )
    def test_limits(self, overrides):
        data = {"name": "Blog", "identifier": "blog-ext", **overrides}
        with pytest.raises(PydanticValidationError):
            CreateExtensionRequest(**data)


def test_config_entry_uses_on_disk_keys():
    entry = ConfigEntry(
        manifest=ConfigManifest(identifier="blog-ext", version="1.0.0", author={"name": "Ada"}),
        is_local=True,
    )

    data = entry.to_json_dict()

    assert data["isLocal"] is True
    assert data["enabled"] is True
    assert "installedAt" in data
    assert data["manifest"]["author"] == {"avatar": "", "name": "Ada", "homepage": ""}
