"""Tests for the LUT registry catalog."""

import json
import os

import pytest

from conftest import make_cube
from lut_action.errors import LUTValidationError, NotFoundError
from lut_action.luts.base import ColorSpace, LUTCreateRequest
from lut_action.luts.registry import LUTRegistry


def _cube_files(registry):
    return [f for f in os.listdir(registry.storage_dir) if f.endswith(".cube")]


class TestCreate:

    def test_identical_bytes_return_same_entry(self, registry, cube_bytes):
        first = registry.create(cube_bytes)
        second = registry.create(cube_bytes, LUTCreateRequest(name="Other name"))
        assert first.id == second.id
        assert len(_cube_files(registry)) == 1
        assert len(registry.list()) == 1

    def test_descriptor_fields(self, registry, cube_bytes):
        lut = registry.create(cube_bytes)
        assert lut.name == "Identity"
        assert lut.size == 2
        assert lut.lattice == "2x2x2"
        assert lut.file_size == len(cube_bytes)
        assert len(lut.hash) == 64
        assert os.path.exists(lut.storage_uri)
        assert lut.metadata["domain_min"] == [0.0, 0.0, 0.0]

    def test_caller_colorspace_wins(self, registry):
        data = make_cube(title="SLog3 Look").encode()
        lut = registry.create(data, LUTCreateRequest(colorspace=ColorSpace.P3D65))
        assert lut.colorspace == ColorSpace.P3D65

    def test_colorspace_from_title(self, registry):
        lut = registry.create(make_cube(title="SLog3 Look").encode())
        assert lut.colorspace == ColorSpace.SLOG3

    def test_invalid_lut_stores_nothing(self, registry):
        with pytest.raises(LUTValidationError):
            registry.create(make_cube(row_delta=1).encode())
        assert _cube_files(registry) == []
        assert registry.list() == []

    def test_returned_copy_is_detached(self, registry, cube_bytes):
        lut = registry.create(cube_bytes)
        lut.name = "mutated"
        assert registry.get(lut.id).name == "Identity"


class TestDelete:

    def test_soft_delete_visibility(self, registry, cube_bytes):
        lut = registry.create(cube_bytes)
        registry.delete(lut.id)
        assert registry.get(lut.id) is None
        assert registry.get(lut.id, include_deleted=True).deleted_at is not None
        assert registry.list() == []
        assert [l.id for l in registry.list(include_deleted=True)] == [lut.id]
        assert os.path.exists(lut.storage_uri)

    def test_hard_delete_removes_file(self, registry, cube_bytes):
        lut = registry.create(cube_bytes)
        registry.delete(lut.id, hard=True)
        assert registry.get(lut.id, include_deleted=True) is None
        assert not os.path.exists(lut.storage_uri)

    def test_delete_unknown(self, registry):
        with pytest.raises(NotFoundError) as exc_info:
            registry.delete("missing")
        assert exc_info.value.code == "LUT_NOT_FOUND"

    def test_recreate_after_soft_delete_gets_new_entry(self, registry, cube_bytes):
        old = registry.create(cube_bytes)
        registry.delete(old.id)
        new = registry.create(cube_bytes)
        assert new.id != old.id
        assert len(_cube_files(registry)) == 2

    def test_file_path_of_deleted_lut(self, registry, cube_bytes):
        lut = registry.create(cube_bytes)
        assert registry.file_path(lut.id) == lut.storage_uri
        registry.delete(lut.id)
        with pytest.raises(NotFoundError):
            registry.file_path(lut.id)


class TestPersistence:

    def test_catalog_survives_reload(self, registry, cube_bytes):
        lut = registry.create(cube_bytes)
        reloaded = LUTRegistry(registry.storage_dir)
        reloaded.load()
        assert reloaded.get(lut.id).hash == lut.hash

    def test_invalid_entries_skipped(self, registry, cube_bytes):
        lut = registry.create(cube_bytes)
        path = os.path.join(registry.storage_dir, "registry.json")
        with open(path) as f:
            entries = json.load(f)
        entries.append({"id": "broken"})
        with open(path, "w") as f:
            json.dump(entries, f)

        reloaded = LUTRegistry(registry.storage_dir)
        reloaded.load()
        assert [l.id for l in reloaded.list()] == [lut.id]


class TestImportDirectory:

    def test_imports_good_and_reports_bad(self, registry, tmp_path):
        source = tmp_path / "incoming"
        source.mkdir()
        (source / "warm.cube").write_text(make_cube(title=None))
        (source / "broken.cube").write_text(make_cube(row_delta=-1))
        (source / "notes.txt").write_text("ignored")

        imported, failures = registry.import_directory(str(source))
        assert [l.name for l in imported] == ["warm"]
        assert list(failures) == ["broken.cube"]
