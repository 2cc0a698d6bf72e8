"""
Tests for module source resolution.
"""

import pytest
from nrequire import FileSourceResolver
from nrequire import InMemorySourceResolver
from nrequire import ModuleResolutionError
from nrequire import fingerprint


class TestFileSourceResolver:
    def test_bare_name_with_extension_lookup(self, resources_dir):
        unit = FileSourceResolver(search_paths=[resources_dir]).resolve("echoModule")

        assert unit.identity.name == "echoModule"
        assert unit.identity.path == str((resources_dir / "echoModule.py").resolve())
        assert unit.identity.fingerprint == fingerprint(unit.text)
        assert unit.origin == "file"
        assert unit.dirname == str(resources_dir.resolve())

    def test_relative_to_from_dir(self, resources_dir):
        unit = FileSourceResolver().resolve("./lib/helpers", from_dir=str(resources_dir))

        assert unit.identity.path.endswith("helpers.py")

    def test_relative_to_base_dir(self, resources_dir):
        unit = FileSourceResolver(base_dir=resources_dir / "lib").resolve("../echoModule")

        assert unit.identity.path.endswith("echoModule.py")

    def test_absolute_path(self, resources_dir):
        path = resources_dir / "echoModule.py"

        assert FileSourceResolver().resolve(str(path)).identity.path == str(path.resolve())

    def test_package_directory(self, tmp_path):
        package = tmp_path / "toolkit"
        package.mkdir()
        (package / "__init__.py").write_text("exports.kit = True\n")

        unit = FileSourceResolver(search_paths=[tmp_path]).resolve("toolkit")

        assert unit.identity.path.endswith("__init__.py")

    def test_search_path_order(self, tmp_path):
        first, second = tmp_path / "first", tmp_path / "second"
        for directory in (first, second):
            directory.mkdir()
            (directory / "shared.py").write_text(f"exports.origin = {directory.name!r}\n")

        unit = FileSourceResolver(search_paths=[first, second]).resolve("shared")

        assert "'first'" in unit.text

    def test_fingerprint_is_stable_and_content_based(self, tmp_path):
        module = tmp_path / "mod.py"
        module.write_text("exports.a = 1\n")
        resolver = FileSourceResolver(search_paths=[tmp_path])

        first = resolver.resolve("mod").identity
        assert resolver.resolve("mod").identity == first

        module.write_text("exports.a = 2\n")
        assert resolver.resolve("mod").identity.fingerprint != first.fingerprint

    def test_not_found(self, resources_dir):
        with pytest.raises(ModuleResolutionError, match="Cannot find module 'nope'"):
            FileSourceResolver(search_paths=[resources_dir]).resolve("nope")

    def test_directory_without_init_is_not_a_module(self, resources_dir):
        with pytest.raises(ModuleResolutionError):
            FileSourceResolver(search_paths=[resources_dir]).resolve("lib")

    def test_remote_identifiers_rejected(self):
        with pytest.raises(ModuleResolutionError, match="Remote modules"):
            FileSourceResolver().resolve("https://example.com/mod.py")

    def test_empty_identifier(self):
        with pytest.raises(ModuleResolutionError):
            FileSourceResolver().resolve("")

    def test_undecodable_source(self, tmp_path):
        (tmp_path / "binary.py").write_bytes(b"\xff\xfe\x00garbage")

        with pytest.raises(ModuleResolutionError, match="not valid UTF-8"):
            FileSourceResolver(search_paths=[tmp_path]).resolve("binary")

    def test_size_limit(self, tmp_path, monkeypatch):
        monkeypatch.setattr("nrequire.sources.MAX_SOURCE_SIZE", 8)
        (tmp_path / "big.py").write_text("exports.value = 'much too long'\n")

        with pytest.raises(ModuleResolutionError, match="too large"):
            FileSourceResolver(search_paths=[tmp_path]).resolve("big")

    def test_custom_extensions(self, tmp_path):
        (tmp_path / "script.mod").write_text("exports.x = 1\n")

        unit = FileSourceResolver(search_paths=[tmp_path], extensions=(".mod",)).resolve("script")

        assert unit.identity.path.endswith("script.mod")


class TestInMemorySourceResolver:
    def test_resolve(self):
        unit = InMemorySourceResolver({"mod": "exports.a = 1"}).resolve("mod")

        assert unit.identity.path == "memory:mod"
        assert unit.origin == "memory"
        assert unit.dirname is None

    def test_dot_slash_prefix(self):
        assert InMemorySourceResolver({"mod": ""}).resolve("./mod").identity.name == "mod"

    def test_add_and_remove(self):
        resolver = InMemorySourceResolver()
        resolver.add("mod", "exports.a = 1")
        assert resolver.resolve("mod").text == "exports.a = 1"

        resolver.remove("mod")
        with pytest.raises(ModuleResolutionError):
            resolver.resolve("mod")
