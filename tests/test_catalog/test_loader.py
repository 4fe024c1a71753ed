"""Tests for catalog loading (stackforge.catalog.loader).

Covers:
- Loading from an in-memory mapping and from a YAML directory
- Declaration order follows file-name order
- ``source`` inlining (text and binary)
- Malformed documents raise CatalogError with the offending document
- The bundled catalog loads and is internally consistent
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from stackforge.catalog import Catalog, Category, FileKind, default_catalog, load_catalog
from stackforge.config import BUILTIN_CATALOG_DIR
from stackforge.errors import CatalogError

pytestmark = pytest.mark.unit


class TestLoadFromMapping:
    def test_loads_all_sections(self, catalog_data: dict[str, Any]):
        catalog = load_catalog(catalog_data)
        assert isinstance(catalog, Catalog)
        assert [t.id for t in catalog.list_templates()] == ["t1", "t2"]
        assert [m.id for m in catalog.list_modules()] == [
            "db-x",
            "auth-a",
            "auth-clerk",
            "auth-auth0",
            "payments-stripe",
        ]
        assert [p.id for p in catalog.list_presets()] == ["starter", "everything"]

    def test_unknown_section_rejected(self, catalog_data: dict[str, Any]):
        catalog_data["plugins"] = []
        with pytest.raises(CatalogError, match="unknown catalog sections: plugins"):
            load_catalog(catalog_data)

    def test_section_must_be_list(self):
        with pytest.raises(CatalogError, match="must be a list"):
            load_catalog({"templates": {"id": "t"}})

    def test_invalid_document_names_origin(self, catalog_data: dict[str, Any]):
        catalog_data["modules"][1]["category"] = "analytics"
        with pytest.raises(CatalogError) as exc_info:
            load_catalog(catalog_data)
        assert "<modules[1]>" in str(exc_info.value)
        assert "category" in str(exc_info.value)

    def test_duplicate_id_rejected(self, catalog_data: dict[str, Any]):
        catalog_data["modules"].append(dict(catalog_data["modules"][0]))
        with pytest.raises(CatalogError, match="duplicate module id"):
            load_catalog(catalog_data)

    def test_malformed_condition_names_origin(self, catalog_data: dict[str, Any]):
        catalog_data["modules"][0]["files"][0]["condition"] = "services.auth =="
        with pytest.raises(CatalogError) as exc_info:
            load_catalog(catalog_data)
        assert "<modules[0]>" in str(exc_info.value)
        assert "condition" in str(exc_info.value)

    def test_source_without_base_dir_rejected(self, catalog_data: dict[str, Any]):
        catalog_data["templates"][1]["skeleton"].append({"path": "x.txt", "source": "x.txt"})
        with pytest.raises(CatalogError, match="no base directory"):
            load_catalog(catalog_data)

    def test_source_inlined_from_base_dir(self, tmp_path: Path, catalog_data: dict[str, Any]):
        (tmp_path / "Makefile.tpl").write_text("run:\n\techo {{ project_name }}\n", encoding="utf-8")
        (tmp_path / "icon.ico").write_bytes(b"\x00\x01\x02")
        catalog_data["templates"][1]["skeleton"] += [
            {"path": "Makefile", "source": "Makefile.tpl"},
            {"path": "icon.ico", "source": "icon.ico", "kind": "binary"},
        ]
        catalog = load_catalog(catalog_data, base_dir=tmp_path)
        skeleton = {f.path: f for f in catalog.get_template("t2").skeleton}
        assert skeleton["Makefile"].content == "run:\n\techo {{ project_name }}\n"
        assert skeleton["icon.ico"].content == b"\x00\x01\x02"
        assert skeleton["icon.ico"].kind is FileKind.BINARY

    def test_content_and_source_conflict(self, tmp_path: Path, catalog_data: dict[str, Any]):
        catalog_data["templates"][1]["skeleton"].append(
            {"path": "x.txt", "source": "x.txt", "content": "inline"}
        )
        with pytest.raises(CatalogError, match="both 'content' and 'source'"):
            load_catalog(catalog_data, base_dir=tmp_path)

    def test_missing_source_file(self, tmp_path: Path, catalog_data: dict[str, Any]):
        catalog_data["templates"][1]["skeleton"].append({"path": "x.txt", "source": "nope.txt"})
        with pytest.raises(CatalogError, match="cannot read source file"):
            load_catalog(catalog_data, base_dir=tmp_path)


class TestLoadFromDirectory:
    def test_same_as_mapping(self, catalog_dir: Path, sample_catalog: Catalog):
        loaded = load_catalog(catalog_dir)
        assert [m.id for m in loaded.list_modules()] == [
            m.id for m in sample_catalog.list_modules()
        ]
        assert loaded.get_module("payments-stripe") == sample_catalog.get_module("payments-stripe")
        assert loaded.get_template("t1") == sample_catalog.get_template("t1")

    def test_file_name_order_is_declaration_order(self, catalog_dir: Path):
        modules_dir = catalog_dir / "modules"
        # Rename the last module so it sorts first
        (modules_dir / "04-payments-stripe.yaml").rename(modules_dir / "0-payments-stripe.yaml")
        loaded = load_catalog(catalog_dir)
        assert loaded.list_modules()[0].id == "payments-stripe"

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(CatalogError, match="catalog directory not found"):
            load_catalog(tmp_path / "missing")

    def test_invalid_yaml(self, catalog_dir: Path):
        bad = catalog_dir / "modules" / "99-bad.yaml"
        bad.write_text("id: [unclosed\n", encoding="utf-8")
        with pytest.raises(CatalogError, match="invalid YAML") as exc_info:
            load_catalog(catalog_dir)
        assert exc_info.value.source == str(bad)

    def test_document_must_be_mapping(self, catalog_dir: Path):
        (catalog_dir / "presets" / "99-list.yaml").write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(CatalogError, match="not a mapping"):
            load_catalog(catalog_dir)

    def test_source_relative_to_document(self, catalog_dir: Path):
        files = catalog_dir / "templates" / "files"
        files.mkdir()
        (files / "hello.txt").write_text("hello {{ project_name }}\n", encoding="utf-8")
        doc = {
            "id": "t3",
            "language": "text",
            "skeleton": [{"path": "hello.txt", "source": "files/hello.txt"}],
        }
        (catalog_dir / "templates" / "02-t3.yaml").write_text(yaml.safe_dump(doc), encoding="utf-8")
        catalog = load_catalog(catalog_dir)
        assert catalog.get_template("t3").skeleton[0].content == "hello {{ project_name }}\n"


class TestBuiltinCatalog:
    def test_loads(self):
        catalog = load_catalog(BUILTIN_CATALOG_DIR)
        assert catalog.has_template("nextjs-saas")
        assert catalog.has_template("fastapi-api")
        assert catalog.has_preset("saas-starter")

    def test_fastapi_requires_database(self):
        catalog = load_catalog(BUILTIN_CATALOG_DIR)
        assert catalog.get_template("fastapi-api").required_slots == frozenset({Category.DATABASE})

    def test_auth_modules_declared_in_priority_order(self):
        catalog = load_catalog(BUILTIN_CATALOG_DIR)
        auth = [m.id for m in catalog.list_modules("auth")]
        assert auth == ["auth-clerk", "auth-auth0"]

    def test_default_catalog_is_cached(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("STACKFORGE_CATALOG_DIR", raising=False)
        default_catalog.cache_clear()
        try:
            assert default_catalog() is default_catalog()
        finally:
            default_catalog.cache_clear()
