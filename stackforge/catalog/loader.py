"""Catalog loading from declarative YAML documents.

A catalog directory holds one document per entity::

    catalog/
        templates/
            nextjs-saas.yaml
        modules/
            10-auth-clerk.yaml
            ...
        presets/
            saas-starter.yaml

Documents are read in file-name order, which is also the declaration order
the resolver uses (prefix file names with numbers to control it).  File
entries may point at a ``source`` file next to the document instead of
carrying inline ``content``.  Loading is all-or-nothing: the first malformed
document raises ``CatalogError`` and no catalog is returned.
"""

from __future__ import annotations

from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ValidationError

from stackforge.catalog.models import FileKind, Preset, ServiceModule, Template
from stackforge.catalog.registry import Catalog
from stackforge.config import Config
from stackforge.errors import CatalogError

_SECTIONS: dict[str, type[BaseModel]] = {
    "templates": Template,
    "modules": ServiceModule,
    "presets": Preset,
}

# Keys holding file entries whose ``source`` must be inlined before validation.
_FILE_KEYS: dict[str, str] = {
    "templates": "skeleton",
    "modules": "files",
}


def load_catalog(
    source: str | Path | Mapping[str, Any],
    *,
    base_dir: str | Path | None = None,
) -> Catalog:
    """Load and validate a catalog.

    Args:
        source: A catalog directory, or a mapping with ``templates``,
            ``modules`` and ``presets`` lists of raw documents.
        base_dir: Directory that ``source`` file references are resolved
            against when *source* is a mapping.

    Returns:
        A fully validated, read-only ``Catalog``.

    Raises:
        CatalogError: On any malformed, duplicate or dangling entry.
    """
    if isinstance(source, Mapping):
        base = Path(base_dir) if base_dir is not None else None
        documents = _documents_from_mapping(source, base)
    else:
        documents = _documents_from_directory(Path(source))

    loaded: dict[str, list[Any]] = {section: [] for section in _SECTIONS}
    for section, origin, data, doc_dir in documents:
        if section in _FILE_KEYS:
            data = _inline_sources(data, _FILE_KEYS[section], doc_dir, origin)
        model = _SECTIONS[section]
        try:
            loaded[section].append(model.model_validate(data))
        except ValidationError as exc:
            raise CatalogError(_format_validation_error(exc), origin) from exc

    return Catalog(
        templates=loaded["templates"],
        modules=loaded["modules"],
        presets=loaded["presets"],
    )


@lru_cache(maxsize=1)
def default_catalog() -> Catalog:
    """Load the process-wide catalog once.

    Uses ``STACKFORGE_CATALOG_DIR`` when set, otherwise the catalog bundled
    with the package.  The result is cached for the lifetime of the process
    and never reloaded.
    """
    return load_catalog(Config.from_env().resolved_catalog_dir)


# ---------------------------------------------------------------------------
# Document discovery
# ---------------------------------------------------------------------------

_Document = tuple[str, str, dict[str, Any], Optional[Path]]


def _documents_from_directory(root: Path) -> list[_Document]:
    if not root.is_dir():
        raise CatalogError("catalog directory not found", root)

    documents: list[_Document] = []
    for section in _SECTIONS:
        section_dir = root / section
        if not section_dir.is_dir():
            continue
        paths = sorted(
            [*section_dir.glob("*.yaml"), *section_dir.glob("*.yml")],
            key=lambda p: p.name,
        )
        for path in paths:
            documents.append((section, str(path), _read_yaml(path), path.parent))
    return documents


def _documents_from_mapping(source: Mapping[str, Any], base: Optional[Path]) -> list[_Document]:
    unknown = sorted(set(source) - set(_SECTIONS))
    if unknown:
        raise CatalogError(f"unknown catalog sections: {', '.join(unknown)}")

    documents: list[_Document] = []
    for section in _SECTIONS:
        entries = source.get(section) or []
        if not isinstance(entries, (list, tuple)):
            raise CatalogError(f"section {section!r} must be a list of documents")
        for idx, data in enumerate(entries):
            origin = f"<{section}[{idx}]>"
            if not isinstance(data, Mapping):
                raise CatalogError("document is not a mapping", origin)
            documents.append((section, origin, dict(data), base))
    return documents


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CatalogError(f"cannot read document: {exc}", path) from exc
    except yaml.YAMLError as exc:
        raise CatalogError(f"invalid YAML: {exc}", path) from exc
    if not isinstance(data, dict):
        raise CatalogError("document is not a mapping", path)
    return data


# ---------------------------------------------------------------------------
# Source inlining
# ---------------------------------------------------------------------------

def _inline_sources(
    data: dict[str, Any],
    key: str,
    doc_dir: Optional[Path],
    origin: str,
) -> dict[str, Any]:
    """Replace ``source`` references in file entries with the file content."""
    entries = data.get(key)
    if not isinstance(entries, list):
        return data

    inlined: list[Any] = []
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("source") is None:
            inlined.append(entry)
            continue
        if entry.get("content") not in (None, ""):
            raise CatalogError(
                f"file {entry.get('path')!r} sets both 'content' and 'source'", origin
            )
        if doc_dir is None:
            raise CatalogError(
                f"file {entry.get('path')!r} uses 'source' but no base directory is known",
                origin,
            )
        source_path = doc_dir / str(entry["source"])
        binary = entry.get("kind") == FileKind.BINARY.value
        try:
            content: str | bytes = (
                source_path.read_bytes() if binary else source_path.read_text(encoding="utf-8")
            )
        except (OSError, UnicodeDecodeError) as exc:
            raise CatalogError(f"cannot read source file {source_path}: {exc}", origin) from exc
        inlined.append({**entry, "content": content})

    return {**data, key: inlined}


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(loc) for loc in err.get("loc", ()))
        parts.append(f"{location or '<root>'}: {err.get('msg', 'invalid value')}")
    return "invalid document: " + "; ".join(parts)
