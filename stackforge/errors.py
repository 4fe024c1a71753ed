"""Exception hierarchy for StackForge.

Every failure the engine can report is a subclass of ``StackForgeError`` and
carries the structured details (ids, paths, constraints) needed to act on it
without re-running.  Resolution, binding and merge errors are always raised
before the filesystem is touched; only ``MaterializationIOError`` can occur
during the final commit.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class StackForgeError(Exception):
    """Base class for every error raised by the engine."""


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class CatalogError(StackForgeError):
    """Raised when a catalog document is malformed or inconsistent."""

    def __init__(self, message: str, source: str | Path | None = None) -> None:
        self.source = str(source) if source is not None else None
        if self.source:
            message = f"{self.source}: {message}"
        super().__init__(message)


class NotFound(StackForgeError, KeyError):
    """Raised by catalog lookups for an id that does not exist."""

    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Unknown {kind}: {entity_id!r}")

    def __str__(self) -> str:
        return self.args[0]


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class ResolutionError(StackForgeError):
    """Base class for errors raised while validating a module selection."""


class UnknownReference(ResolutionError):
    """A request named a template, module or preset the catalog lacks."""

    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Unknown {kind} referenced in request: {entity_id!r}")


class IncompatibleSlot(ResolutionError):
    """A module's category is not accepted by the selected template."""

    def __init__(self, module_id: str, category: str, template_id: str) -> None:
        self.module_id = module_id
        self.category = category
        self.template_id = template_id
        super().__init__(self._message())

    def _message(self) -> str:
        return (
            f"Module {self.module_id!r} ({self.category}) does not fit any slot "
            f"of template {self.template_id!r}"
        )


class IncompatibleTemplate(IncompatibleSlot):
    """A module restricts ``compatible_templates`` and excludes the template."""

    def _message(self) -> str:
        return (
            f"Module {self.module_id!r} is not compatible with template "
            f"{self.template_id!r}"
        )


class UnsatisfiableRequirement(ResolutionError):
    """A required module cannot be added to the selection."""

    def __init__(self, module_id: str, requirement: str, reason: str) -> None:
        self.module_id = module_id
        self.requirement = requirement
        self.reason = reason
        super().__init__(
            f"Module {module_id!r} requires {requirement!r}, which cannot be "
            f"included: {reason}"
        )


class ModuleConflict(ResolutionError):
    """Two selected modules are mutually exclusive."""

    def __init__(self, first: str, second: str) -> None:
        self.first = first
        self.second = second
        super().__init__(f"Modules {first!r} and {second!r} conflict")

    @property
    def pair(self) -> tuple[str, str]:
        return (self.first, self.second)


class MissingRequiredSlot(ResolutionError):
    """A slot the template requires is left empty by the selection."""

    def __init__(self, template_id: str, category: str) -> None:
        self.template_id = template_id
        self.category = category
        super().__init__(
            f"Template {template_id!r} requires a {category} module, but none is selected"
        )


# ---------------------------------------------------------------------------
# Variable binding
# ---------------------------------------------------------------------------


class MissingVariable(StackForgeError):
    """A required or referenced variable has no value."""

    def __init__(self, name: str, owner: str) -> None:
        self.name = name
        self.owner = owner
        super().__init__(f"Variable {name!r} (needed by {owner!r}) has no value")


class InvalidVariable(StackForgeError):
    """A bound value does not satisfy its declared type or bounds."""

    def __init__(self, name: str, owner: str, reason: str) -> None:
        self.name = name
        self.owner = owner
        self.reason = reason
        super().__init__(f"Variable {name!r} (declared by {owner!r}): {reason}")


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


class MergeError(StackForgeError):
    """Base class for errors raised while building the in-memory tree."""


class PathCollision(MergeError):
    """A contribution would clobber a path it does not own."""

    def __init__(
        self,
        path: str,
        module_id: str,
        existing_owner: str,
        reason: str = "path already exists",
    ) -> None:
        self.path = path
        self.module_id = module_id
        self.existing_owner = existing_owner
        self.reason = reason
        super().__init__(
            f"{module_id!r} cannot write {path!r}: {reason} "
            f"(owned by {existing_owner!r})"
        )


class MissingTarget(MergeError):
    """An append or insert targets a path that does not exist yet."""

    def __init__(self, path: str, module_id: str) -> None:
        self.path = path
        self.module_id = module_id
        super().__init__(f"{module_id!r} modifies {path!r}, which does not exist")


class MissingManifest(MergeError):
    """A module declares packages for an ecosystem the template has no manifest for."""

    def __init__(self, ecosystem: str, module_id: str, template_id: str) -> None:
        self.ecosystem = ecosystem
        self.module_id = module_id
        self.template_id = template_id
        super().__init__(
            f"{module_id!r} declares {ecosystem} dependencies, but template "
            f"{template_id!r} has no {ecosystem} manifest"
        )


class MarkerNotFound(MergeError):
    """An insert-at-marker contribution could not find its marker."""

    def __init__(self, path: str, marker: str, module_id: str) -> None:
        self.path = path
        self.marker = marker
        self.module_id = module_id
        super().__init__(f"Marker {marker!r} not found in {path!r} (from {module_id!r})")


class DependencyVersionConflict(MergeError):
    """Version constraints for one package have no common version."""

    def __init__(
        self,
        package: str,
        ecosystem: str,
        constraints: Sequence[tuple[str, str]],
    ) -> None:
        self.package = package
        self.ecosystem = ecosystem
        self.constraints = list(constraints)
        detail = ", ".join(f"{owner}: {spec}" for owner, spec in self.constraints)
        super().__init__(
            f"No version of {ecosystem} package {package!r} satisfies all "
            f"constraints ({detail})"
        )


class EnvVarConflict(MergeError):
    """Two modules describe one environment variable differently (strict policy)."""

    def __init__(self, name: str, first: str, second: str) -> None:
        self.name = name
        self.first = first
        self.second = second
        super().__init__(
            f"Environment variable {name!r} is declared differently by "
            f"{first!r} and {second!r}"
        )


class TemplateRenderError(MergeError):
    """A content template failed to render."""

    def __init__(self, path: str, owner: str, message: str) -> None:
        self.path = path
        self.owner = owner
        super().__init__(f"Failed to render {path!r} from {owner!r}: {message}")


class InvalidPath(MergeError):
    """A rendered path is absolute or escapes the project root."""

    def __init__(self, path: str, owner: str) -> None:
        self.path = path
        self.owner = owner
        super().__init__(f"Unsafe output path {path!r} from {owner!r}")


# ---------------------------------------------------------------------------
# Materialization
# ---------------------------------------------------------------------------


class OutputNotEmpty(StackForgeError):
    """The output directory already holds files and ``force`` was not set."""

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)
        super().__init__(
            f"Output directory {self.output_dir} is not empty; pass force=True to replace it"
        )


class MaterializationIOError(StackForgeError):
    """A filesystem operation failed while staging or committing output."""

    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Could not write {self.path}: {reason}")


class GenerationCancelled(StackForgeError):
    """Generation was cancelled before the staged output was committed."""
