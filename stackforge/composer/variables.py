"""Variable binding.

Builds the single namespace every content template is rendered with.  Values
are layered, lowest to highest precedence:

1. defaults declared by the template and the resolved modules
   (later modules in merge order override earlier ones),
2. project-scope values derived from the request (``project_name``,
   ``project_slug``, ``package_name``, ...),
3. explicit values supplied by the caller.

Binding completes before any content is rendered, so a failure while
substituting is always a defect in a content template, never incomplete
input.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from stackforge.catalog import (
    FileKind,
    ServiceModule,
    Template,
    VariableDecl,
    VariableType,
    is_included,
    selected_services,
)
from stackforge.composer.templates import TemplateRenderer
from stackforge.errors import InvalidVariable, MissingVariable
from stackforge.utils import python_identifier, sanitize_name, title_case

# Context names supplied by the merger rather than by variable binding.
RESERVED_NAMES: frozenset[str] = frozenset(
    {"template", "modules", "services", "dependencies", "environment_variables"}
)

_TRUE_STRINGS = {"true", "yes", "y", "on", "1"}
_FALSE_STRINGS = {"false", "no", "n", "off", "0"}


def project_defaults(output_dir: str | Path, overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Derive project-scope variables from the output directory and overrides.

    ``project_name`` defaults to the output directory's name; the other names
    are derived from whichever ``project_name`` ends up bound.
    """
    output_path = Path(output_dir)
    name = overrides.get("project_name") or output_path.name or output_path.resolve().name
    name = str(name)
    return {
        "project_name": name,
        "project_slug": sanitize_name(name),
        "package_name": python_identifier(name),
        "project_title": title_case(name),
        "output_path": str(output_path),
    }


class VariableBinder:
    """Layers declared defaults, project values and overrides into one namespace."""

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self.renderer = renderer or TemplateRenderer()

    def bind(
        self,
        template: Template,
        modules: Sequence[ServiceModule],
        overrides: Mapping[str, Any],
        project_values: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Build and validate the namespace for one generation request.

        Args:
            template: The resolved template.
            modules: Resolved modules in merge order.
            overrides: Caller-supplied values (highest precedence).
            project_values: Project-scope values, see :func:`project_defaults`.

        Returns:
            The complete variable namespace.

        Raises:
            MissingVariable: A required variable has no value, or a content
                template references a name that is not bound.
            InvalidVariable: A value does not match its declaration.
        """
        declarations = _declarations(template, modules)

        namespace: dict[str, Any] = {}
        for _owner, decl in declarations:
            if decl.default is not None:
                namespace[decl.name] = decl.default
        namespace.update(project_values)
        namespace.update(overrides)

        for owner, decl in declarations:
            value = namespace.get(decl.name)
            if value is None or value == "":
                if decl.required:
                    raise MissingVariable(decl.name, owner)
                namespace[decl.name] = "" if value is None else value
                continue
            namespace[decl.name] = _coerce(decl, value, owner)

        self.check_references(template, modules, namespace)
        return namespace

    def check_references(
        self,
        template: Template,
        modules: Sequence[ServiceModule],
        namespace: Mapping[str, Any],
    ) -> None:
        """Ensure every name referenced by selected content is bound.

        Files whose condition excludes them from this selection are skipped.
        """
        services = selected_services(modules)
        sources: list[tuple[str, str, str]] = []
        for spec in template.skeleton:
            if not is_included(spec.condition, services):
                continue
            sources.append((template.id, spec.path, spec.path))
            if spec.kind is FileKind.TEXT and isinstance(spec.content, str):
                sources.append((template.id, spec.path, spec.content))
        for module in modules:
            for contribution in module.files:
                if not is_included(contribution.condition, services):
                    continue
                sources.append((module.id, contribution.path, contribution.path))
                sources.append((module.id, contribution.path, contribution.content))

        for owner, path, text in sources:
            referenced = self.renderer.referenced_variables(text, path=path, owner=owner)
            for name in sorted(referenced):
                if name not in namespace and name not in RESERVED_NAMES:
                    raise MissingVariable(name, owner)


def _declarations(
    template: Template, modules: Sequence[ServiceModule]
) -> list[tuple[str, VariableDecl]]:
    declared: list[tuple[str, VariableDecl]] = [(template.id, d) for d in template.variables]
    for module in modules:
        declared.extend((module.id, d) for d in module.variables)
    return declared


def _coerce(decl: VariableDecl, value: Any, owner: str) -> Any:
    """Convert *value* to the declared type and check its bounds."""
    if decl.type is VariableType.BOOLEAN:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise InvalidVariable(decl.name, owner, f"expected a boolean, got {value!r}")

    if decl.type is VariableType.NUMBER:
        if isinstance(value, bool):
            raise InvalidVariable(decl.name, owner, f"expected a number, got {value!r}")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise InvalidVariable(decl.name, owner, f"expected a number, got {value!r}") from None
        if decl.minimum is not None and number < decl.minimum:
            raise InvalidVariable(decl.name, owner, f"number too small (minimum {decl.minimum:g})")
        if decl.maximum is not None and number > decl.maximum:
            raise InvalidVariable(decl.name, owner, f"number too large (maximum {decl.maximum:g})")
        return int(number) if number.is_integer() else number

    if isinstance(value, (dict, list, tuple, set)):
        raise InvalidVariable(decl.name, owner, f"expected a scalar, got {type(value).__name__}")
    text = str(value)

    if decl.type is VariableType.CHOICE:
        if text not in decl.options:
            raise InvalidVariable(
                decl.name,
                owner,
                f"invalid choice {text!r}; valid options: {', '.join(decl.options)}",
            )
        return text

    if len(text) < decl.min_length:
        raise InvalidVariable(
            decl.name, owner, f"string too short (minimum {decl.min_length} characters)"
        )
    if decl.max_length is not None and len(text) > decl.max_length:
        raise InvalidVariable(
            decl.name, owner, f"string too long (maximum {decl.max_length} characters)"
        )
    return text

