"""Tests for descriptor file loading and the enabled flag rewrite."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

from modcore.errors import InvalidDescriptorError, VersionParseError
from modcore.registry.metadata import (
    build_descriptor,
    is_valid_module_id,
    legacy_marker_name,
    load_descriptor,
    load_manifest,
    update_enabled_flag,
)
from modcore.version import Version


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadManifest:
    def test_full_descriptor(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "module.yaml",
            """\
id: blog
version: 2.1.0
description: Blog engine
dependencies:
  core: ^1.0
optional_dependencies:
  search: ">=2.0"
conflicts:
  legacy-blog: "*"
providers: [blog.Provider]
commands: ["blog:publish", "blog:import"]
lazy: true
route_prefixes: [/blog]
enabled: false
config: config.yaml
""",
        )
        manifest = load_manifest(path)
        assert manifest.id == "blog"
        assert manifest.version == "2.1.0"
        assert manifest.dependencies == {"core": "^1.0"}
        assert manifest.optional_dependencies == {"search": ">=2.0"}
        assert manifest.commands == ["blog:publish", "blog:import"]
        assert manifest.lazy is True
        assert manifest.enabled is False

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        manifest = load_manifest(_write(tmp_path / "module.yaml", ""))
        assert manifest.version == "1.0.0"
        assert manifest.dependencies == {}
        assert manifest.providers == []
        assert manifest.enabled is True
        assert manifest.lazy is False

    def test_dependency_list_forms(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "module.yaml",
            """\
dependencies: [core, users]
optional_dependencies:
  - module_id: search
    version: ^2.0
""",
        )
        manifest = load_manifest(path)
        assert manifest.dependencies == {"core": "*", "users": "*"}
        assert manifest.optional_dependencies == {"search": "^2.0"}

    def test_null_constraint_means_any(self, tmp_path: Path) -> None:
        manifest = load_manifest(_write(tmp_path / "module.yaml", "dependencies:\n  core:\n"))
        assert manifest.dependencies == {"core": "*"}

    def test_numeric_version_is_coerced(self, tmp_path: Path) -> None:
        manifest = load_manifest(_write(tmp_path / "module.yaml", "version: 2\n"))
        assert manifest.version == "2"

    def test_single_string_list(self, tmp_path: Path) -> None:
        manifest = load_manifest(_write(tmp_path / "module.yaml", "route_prefixes: /admin\n"))
        assert manifest.route_prefixes == ["/admin"]

    def test_unknown_keys_ignored(self, tmp_path: Path) -> None:
        manifest = load_manifest(_write(tmp_path / "module.yaml", "author: someone\n"))
        assert manifest.version == "1.0.0"

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidDescriptorError) as exc_info:
            load_manifest(_write(tmp_path / "module.yaml", "dependencies: [unclosed\n"))
        assert exc_info.value.code == "DESCRIPTOR_INVALID"
        assert "YAML parse error" in exc_info.value.details["reason"]

    def test_non_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidDescriptorError, match="mapping"):
            load_manifest(_write(tmp_path / "module.yaml", "- a\n- b\n"))

    def test_schema_violation_names_field(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidDescriptorError) as exc_info:
            load_manifest(_write(tmp_path / "module.yaml", "lazy: sometimes\n"))
        assert "lazy" in exc_info.value.details["reason"]

    def test_bad_dependency_entry(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidDescriptorError, match="dependencies"):
            load_manifest(_write(tmp_path / "module.yaml", "dependencies: [42]\n"))


class TestBuildDescriptor:
    def test_id_defaults_to_directory_name(self, tmp_path: Path) -> None:
        module_dir = tmp_path / "shop"
        module_dir.mkdir()
        source = _write(module_dir / "module.yaml", "version: 1.2.0\n")
        desc = build_descriptor(load_manifest(source), module_dir, source)
        assert desc.module_id == "shop"
        assert desc.version == Version(1, 2, 0)
        assert desc.location == module_dir
        assert desc.source == source

    def test_name_used_when_id_absent(self, tmp_path: Path) -> None:
        source = _write(tmp_path / "module.yaml", "name: storefront\n")
        assert build_descriptor(load_manifest(source), tmp_path, source).module_id == "storefront"

    def test_invalid_version_is_descriptor_error(self, tmp_path: Path) -> None:
        source = _write(tmp_path / "module.yaml", "version: one\n")
        with pytest.raises(InvalidDescriptorError) as exc_info:
            build_descriptor(load_manifest(source), tmp_path, source)
        assert isinstance(exc_info.value.cause, VersionParseError)

    def test_invalid_id(self, tmp_path: Path) -> None:
        source = _write(tmp_path / "module.yaml", "id: Not Valid\n")
        with pytest.raises(InvalidDescriptorError, match="module id"):
            build_descriptor(load_manifest(source), tmp_path, source)


class TestLoadDescriptor:
    def test_reads_descriptor_file(self, tmp_path: Path) -> None:
        _write(tmp_path / "module.yaml", "id: blog\n")
        desc = load_descriptor(tmp_path)
        assert desc is not None
        assert desc.module_id == "blog"

    def test_custom_descriptor_name(self, tmp_path: Path) -> None:
        _write(tmp_path / "manifest.yml", "id: blog\n")
        assert load_descriptor(tmp_path) is None
        assert load_descriptor(tmp_path, "manifest.yml").module_id == "blog"

    def test_legacy_marker(self, tmp_path: Path) -> None:
        module_dir = tmp_path / "cart"
        module_dir.mkdir()
        marker = _write(module_dir / "CartModule.py", "")
        desc = load_descriptor(module_dir)
        assert desc is not None
        assert desc.module_id == "cart"
        assert desc.version == Version(1, 0, 0)
        assert desc.source == marker
        assert desc.dependencies == {}

    def test_legacy_marker_with_invalid_name(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        module_dir = tmp_path / "Cart"
        module_dir.mkdir()
        _write(module_dir / "CartModule.py", "")
        with caplog.at_level(logging.WARNING, logger="modcore.registry.metadata"):
            assert load_descriptor(module_dir) is None
        assert "invalid name" in caplog.text

    def test_neither_file(self, tmp_path: Path) -> None:
        assert load_descriptor(tmp_path) is None


class TestModuleIds:
    @pytest.mark.parametrize("module_id", ["blog", "blog-admin", "shop.cart", "a1", "0day", "x_y"])
    def test_valid(self, module_id: str) -> None:
        assert is_valid_module_id(module_id)

    @pytest.mark.parametrize("module_id", ["", "Blog", "-blog", "blog admin", ".hidden"])
    def test_invalid(self, module_id: str) -> None:
        assert not is_valid_module_id(module_id)

    def test_legacy_marker_name(self) -> None:
        assert legacy_marker_name("cart") == "CartModule.py"
        assert legacy_marker_name("userAccounts") == "UserAccountsModule.py"


class TestUpdateEnabledFlag:
    def test_rewrites_existing_key_preserving_other_lines(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "module.yaml", "# Blog module\nid: blog\nenabled: true\nversion: 1.0.0\n")
        update_enabled_flag(path, False)
        assert path.read_text() == "# Blog module\nid: blog\nenabled: false\nversion: 1.0.0\n"

    def test_appends_missing_key(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "module.yaml", "id: blog")
        update_enabled_flag(path, False)
        assert path.read_text() == "id: blog\nenabled: false\n"

    def test_creates_file_for_legacy_module(self, tmp_path: Path) -> None:
        path = tmp_path / "module.yaml"
        update_enabled_flag(path, False)
        assert yaml.safe_load(path.read_text()) == {"enabled": False}

    def test_flow_style_falls_back_to_dump(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "module.yaml", "{id: blog, enabled: true}\n")
        update_enabled_flag(path, False)
        assert yaml.safe_load(path.read_text()) == {"id": "blog", "enabled": False}
