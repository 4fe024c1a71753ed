"""Read-only registry of templates, service modules and presets.

A ``Catalog`` is built once (usually by :func:`stackforge.catalog.load_catalog`)
and then shared by every generation request.  Construction validates the
cross-references between entities so that lookups afterwards are total over
valid ids.
"""

from __future__ import annotations

from collections.abc import Iterable
from types import MappingProxyType
from typing import Optional

from stackforge.catalog.models import Category, Preset, ServiceModule, Template
from stackforge.errors import CatalogError, NotFound


class Catalog:
    """Immutable, ordered collection of catalog entities.

    Entities keep the order in which they were declared; the constraint
    resolver relies on module declaration order to pick which conflict to
    report first.
    """

    def __init__(
        self,
        templates: Iterable[Template] = (),
        modules: Iterable[ServiceModule] = (),
        presets: Iterable[Preset] = (),
    ) -> None:
        self._templates = MappingProxyType(_index("template", templates))
        self._modules = MappingProxyType(_index("module", modules))
        self._presets = MappingProxyType(_index("preset", presets))
        self._module_order = MappingProxyType(
            {module_id: idx for idx, module_id in enumerate(self._modules)}
        )
        self._check_references()

    # -- Lookups -----------------------------------------------------------

    def get_template(self, template_id: str) -> Template:
        try:
            return self._templates[template_id]
        except KeyError:
            raise NotFound("template", template_id) from None

    def get_module(self, module_id: str) -> ServiceModule:
        try:
            return self._modules[module_id]
        except KeyError:
            raise NotFound("module", module_id) from None

    def get_preset(self, preset_id: str) -> Preset:
        try:
            return self._presets[preset_id]
        except KeyError:
            raise NotFound("preset", preset_id) from None

    def has_template(self, template_id: str) -> bool:
        return template_id in self._templates

    def has_module(self, module_id: str) -> bool:
        return module_id in self._modules

    def has_preset(self, preset_id: str) -> bool:
        return preset_id in self._presets

    def declaration_index(self, module_id: str) -> int:
        """Position of a module in catalog declaration order."""
        try:
            return self._module_order[module_id]
        except KeyError:
            raise NotFound("module", module_id) from None

    # -- Listings ----------------------------------------------------------

    def list_templates(self) -> list[Template]:
        return list(self._templates.values())

    def list_modules(self, category: Optional[Category | str] = None) -> list[ServiceModule]:
        """Return modules in declaration order, optionally filtered by category."""
        if category is None:
            return list(self._modules.values())
        wanted = Category(category)
        return [m for m in self._modules.values() if m.category is wanted]

    def list_presets(self) -> list[Preset]:
        return list(self._presets.values())

    def __len__(self) -> int:
        return len(self._templates) + len(self._modules) + len(self._presets)

    def __repr__(self) -> str:
        return (
            f"Catalog(templates={len(self._templates)}, modules={len(self._modules)}, "
            f"presets={len(self._presets)})"
        )

    # -- Validation --------------------------------------------------------

    def _check_references(self) -> None:
        for module in self._modules.values():
            if module.compatible_templates != "any":
                unknown = sorted(t for t in module.compatible_templates if t not in self._templates)
                if unknown:
                    raise CatalogError(
                        f"module {module.id!r} lists unknown compatible templates: "
                        f"{', '.join(unknown)}"
                    )
            for field_name in ("requires", "conflicts_with"):
                refs = getattr(module, field_name)
                unknown = sorted(r for r in refs if r not in self._modules)
                if unknown:
                    raise CatalogError(
                        f"module {module.id!r} {field_name} unknown modules: {', '.join(unknown)}"
                    )
                if module.id in refs:
                    raise CatalogError(f"module {module.id!r} {field_name} itself")

        for preset in self._presets.values():
            unknown = sorted(m for m in preset.modules if m not in self._modules)
            if unknown:
                raise CatalogError(
                    f"preset {preset.id!r} references unknown modules: {', '.join(unknown)}"
                )


def _index(kind: str, entities: Iterable) -> dict:
    indexed: dict = {}
    for entity in entities:
        if entity.id in indexed:
            raise CatalogError(f"duplicate {kind} id: {entity.id!r}")
        indexed[entity.id] = entity
    return indexed
