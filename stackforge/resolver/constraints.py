"""Constraint resolution over the module compatibility graph.

Given a template and an (already preset-expanded) module selection, the
resolver either produces a deterministic, totally ordered module list or
raises the first violation it finds:

1. unknown template or module ids          -> ``UnknownReference``
2. a module outside the template's slots   -> ``IncompatibleSlot``
3. ``requires`` closure                    -> ``UnsatisfiableRequirement``
4. pairwise conflicts                      -> ``ModuleConflict``
5. template slots left empty               -> ``MissingRequiredSlot``

Resolution stops at the first violation; callers fix it and re-run to
discover the next one.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from stackforge.catalog import CATEGORY_PRIORITY, Catalog, ServiceModule, Template
from stackforge.errors import (
    IncompatibleSlot,
    IncompatibleTemplate,
    MissingRequiredSlot,
    ModuleConflict,
    UnknownReference,
    UnsatisfiableRequirement,
)


class Resolution(BaseModel):
    """A validated, ordered module selection for one template."""

    model_config = ConfigDict(frozen=True)

    template_id: str
    ordered_modules: tuple[str, ...] = Field(
        default=(), description="Merge order: category priority, then module id"
    )
    auto_included: tuple[str, ...] = Field(
        default=(), description="Modules added only because another module requires them"
    )


class ConstraintResolver:
    """Validates module selections against a catalog's compatibility graph."""

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog

    def resolve(
        self,
        template_id: str,
        requested: Iterable[str],
        excluded: Iterable[str] = (),
    ) -> Resolution:
        """Resolve *requested* modules for *template_id*.

        Args:
            template_id: Template the modules are composed onto.
            requested: Explicitly selected module ids.
            excluded: Module ids the caller removed; requirements may not
                pull them back in.

        Returns:
            The ordered ``Resolution``.
        """
        if not self.catalog.has_template(template_id):
            raise UnknownReference("template", template_id)
        template = self.catalog.get_template(template_id)

        excluded_ids = frozenset(excluded)
        requested_ids = set(requested) - excluded_ids
        for module_id in sorted(requested_ids):
            if not self.catalog.has_module(module_id):
                raise UnknownReference("module", module_id)

        for module_id in self._by_declaration(requested_ids):
            self._check_slot(self.catalog.get_module(module_id), template)

        closed = self._close(template, requested_ids, excluded_ids)
        self._check_conflicts(closed)
        self._check_required_slots(template, closed)

        ordered = tuple(sorted(closed, key=self._merge_key))
        return Resolution(
            template_id=template_id,
            ordered_modules=ordered,
            auto_included=tuple(m for m in ordered if m not in requested_ids),
        )

    # -- Ordering ----------------------------------------------------------

    def _merge_key(self, module_id: str) -> tuple[int, str]:
        module = self.catalog.get_module(module_id)
        return (CATEGORY_PRIORITY[module.category], module_id)

    def _by_declaration(self, module_ids: Iterable[str]) -> list[str]:
        return sorted(module_ids, key=self.catalog.declaration_index)

    # -- Step 2: slots -----------------------------------------------------

    @staticmethod
    def _check_slot(module: ServiceModule, template: Template) -> None:
        if not template.accepts(module.category):
            raise IncompatibleSlot(module.id, module.category.value, template.id)
        if not module.supports_template(template.id):
            raise IncompatibleTemplate(module.id, module.category.value, template.id)

    # -- Step 3: requirement closure ---------------------------------------

    def _close(
        self,
        template: Template,
        requested: set[str],
        excluded: frozenset[str],
    ) -> set[str]:
        """Add requirements depth-first until a fixed point, detecting cycles."""
        selected = set(requested)
        done: set[str] = set()
        stack: list[str] = []

        def visit(module_id: str) -> None:
            stack.append(module_id)
            module = self.catalog.get_module(module_id)
            for requirement in self._by_declaration(module.requires):
                if requirement in stack:
                    cycle = stack[stack.index(requirement):] + [requirement]
                    raise UnsatisfiableRequirement(
                        module_id, requirement, "requirement cycle " + " -> ".join(cycle)
                    )
                if requirement in done:
                    continue
                if requirement not in selected:
                    self._check_requirement(template, module_id, requirement, selected, excluded)
                    selected.add(requirement)
                visit(requirement)
            stack.pop()
            done.add(module_id)

        for module_id in self._by_declaration(requested):
            if module_id not in done:
                visit(module_id)
        return selected

    def _check_requirement(
        self,
        template: Template,
        owner: str,
        requirement_id: str,
        selected: set[str],
        excluded: frozenset[str],
    ) -> None:
        requirement = self.catalog.get_module(requirement_id)
        if requirement_id in excluded:
            raise UnsatisfiableRequirement(owner, requirement_id, "it was explicitly excluded")
        if not template.accepts(requirement.category):
            raise UnsatisfiableRequirement(
                owner,
                requirement_id,
                f"template {template.id!r} has no {requirement.category.value} slot",
            )
        if not requirement.supports_template(template.id):
            raise UnsatisfiableRequirement(
                owner, requirement_id, f"it is not compatible with template {template.id!r}"
            )
        for other_id in self._by_declaration(selected):
            if self._conflicts(requirement, self.catalog.get_module(other_id)):
                raise UnsatisfiableRequirement(
                    owner, requirement_id, f"it conflicts with selected module {other_id!r}"
                )

    # -- Step 4: conflicts -------------------------------------------------

    def _check_conflicts(self, module_ids: set[str]) -> None:
        ordered = [self.catalog.get_module(m) for m in self._by_declaration(module_ids)]
        for idx, first in enumerate(ordered):
            for second in ordered[idx + 1:]:
                if self._conflicts(first, second):
                    raise ModuleConflict(first.id, second.id)

    @staticmethod
    def _conflicts(a: ServiceModule, b: ServiceModule) -> bool:
        """Explicit conflicts in either direction, or two modules in one category."""
        return (
            b.id in a.conflicts_with
            or a.id in b.conflicts_with
            or a.category is b.category
        )

    # -- Step 5: required slots --------------------------------------------

    def _check_required_slots(self, template: Template, module_ids: set[str]) -> None:
        filled = {self.catalog.get_module(m).category for m in module_ids}
        missing = sorted(template.required_slots - filled, key=CATEGORY_PRIORITY.__getitem__)
        if missing:
            raise MissingRequiredSlot(template.id, missing[0].value)
